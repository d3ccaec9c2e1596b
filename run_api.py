#!/usr/bin/env python3
"""Serve the OmniSearch session API with uvicorn."""

import argparse
import os
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from dotenv import load_dotenv
import uvicorn


MODEL_KEY_VARS = ("GEMINI_API_KEY", "API_KEY", "OPENAI_API_KEY")


def setup_environment():
    """Load environment variables from .env if it exists."""
    if Path(".env").exists():
        load_dotenv()
        print("[INFO] Loaded environment from .env file")
    if not any(os.getenv(var) for var in MODEL_KEY_VARS):
        print("[WARN] No model API key set, only the offline 'scripted' provider is available")
    if not os.getenv("API_SECRET_KEY"):
        print("[WARN] API_SECRET_KEY not set, endpoints accept any caller")


def main():
    parser = argparse.ArgumentParser(description='Serve the OmniSearch session API')
    parser.add_argument('--host', default=os.getenv("HOST", "0.0.0.0"))
    parser.add_argument('--port', type=int, default=int(os.getenv("PORT", "8000")))
    parser.add_argument('--reload', action='store_true', help='Restart on code changes')
    parser.add_argument('--debug', action='store_true', help='Record the structured debug log')
    args = parser.parse_args()

    setup_environment()
    if args.debug:
        os.environ["OMNISEARCH_DEBUG"] = "1"

    print("=" * 60)
    print("OMNISEARCH API")
    print("=" * 60)
    print(f"Listening: http://{args.host}:{args.port}")
    print(f"Docs:      http://localhost:{args.port}/docs")
    print("-" * 60)

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload, log_level="info")


if __name__ == "__main__":
    main()
