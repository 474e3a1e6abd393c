"""
WSGI entry point: status API plus the vault monitor running in the background
"""
import os

from dotenv import load_dotenv

load_dotenv()

from app import create_app

application = create_app()

if __name__ == "__main__":
    application.run(host="0.0.0.0", port=int(os.environ.get("PORT", 8080)), debug=False)
