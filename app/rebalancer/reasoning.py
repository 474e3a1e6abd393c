"""
Reasoning backend used by the analyzer and executor agents.

The backend is an untrusted advisor: callers always have a rule-based path
for when it is missing, fails, or answers with something unusable.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from openai import OpenAI, OpenAIError

from app.rebalancer.exceptions import ReasoningBackendError
from app.rebalancer.logging_config import setup_logger

logger = setup_logger()


@dataclass
class ToolCall:
    """A tool selected by the backend, with its decoded arguments."""

    name: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ReasoningResponse:
    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)


class ReasoningBackend(ABC):
    """Abstract reasoning backend."""

    @abstractmethod
    def complete(
        self, system_instruction: str, user_prompt: str, tools: Optional[List[Dict[str, Any]]] = None
    ) -> ReasoningResponse:
        """
        Ask the backend for a recommendation.

        Args:
            system_instruction: Role and policy for the model.
            user_prompt: Structured description of the vault.
            tools: Function declarations; when given the backend must select one.

        Returns:
            ReasoningResponse with free text and/or tool calls.

        Raises:
            ReasoningBackendError: If the backend cannot be reached or errors.
        """


def _decode_tool_arguments(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("ReasoningBackend: Tool arguments are not valid JSON: %s", raw)
        return {}
    return decoded if isinstance(decoded, dict) else {}


class OpenAIReasoningBackend(ReasoningBackend):
    """Chat completions backend using the OpenAI SDK."""

    def __init__(self, api_key: str, model: str, timeout: float = 30, client: Optional[OpenAI] = None):
        self.model = model
        self.client = client or OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    @classmethod
    def from_config(cls, config) -> Optional["OpenAIReasoningBackend"]:
        """Build the backend, or None when no API key is configured."""
        if not config.reasoning_enabled:
            logger.warning("ReasoningBackend: OPENAI_API_KEY not set, agents will use rule-based decisions only.")
            return None
        return cls(
            api_key=config.OPENAI_API_KEY,
            model=config.REASONING_MODEL,
            timeout=float(config.REASONING_TIMEOUT_SECONDS),
        )

    def complete(
        self, system_instruction: str, user_prompt: str, tools: Optional[List[Dict[str, Any]]] = None
    ) -> ReasoningResponse:
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": user_prompt},
            ],
        }
        if tools:
            request["tools"] = tools
            request["tool_choice"] = "required"

        try:
            completion = self.client.chat.completions.create(**request)
        except OpenAIError as exc:
            raise ReasoningBackendError(f"Reasoning request failed: {exc}") from exc

        if not completion.choices:
            raise ReasoningBackendError("Reasoning response contained no choices")

        message = completion.choices[0].message
        tool_calls = [
            ToolCall(name=call.function.name, args=_decode_tool_arguments(call.function.arguments))
            for call in (message.tool_calls or [])
            if getattr(call, "function", None) is not None
        ]
        return ReasoningResponse(text=message.content or "", tool_calls=tool_calls)
