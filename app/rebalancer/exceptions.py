"""
Custom exceptions for the vault rebalance agent.
"""


class RebalanceAgentError(Exception):
    """Base exception for all rebalance agent errors."""


class ConfigError(RebalanceAgentError):
    """Raised for configuration-related errors."""


class ChainReadError(RebalanceAgentError):
    """Raised when reading vault or position state from chain fails."""


class ChainWriteError(RebalanceAgentError):
    """Raised when submitting an agent transaction fails."""


class ReasoningBackendError(RebalanceAgentError):
    """Raised when the reasoning backend cannot produce a response."""


class AnalysisParseError(RebalanceAgentError):
    """Raised when a backend response has no usable JSON recommendation."""


class ToolArgumentError(RebalanceAgentError):
    """Raised when a selected tool cannot be executed with the available data."""


class StrategyError(RebalanceAgentError):
    """Raised for strategy loading or validation errors."""
