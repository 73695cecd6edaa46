"""
weekgame API server entry point.

Run with:
    python -m weekgame.api.main

Or with uvicorn directly:
    uvicorn weekgame.api.main:app --reload --host 0.0.0.0 --port 8000
"""

import argparse
import logging
import os

import uvicorn

from ..config import load_config
from .server import create_app


def main():
    """Main entry point for the API server."""
    parser = argparse.ArgumentParser(description="weekgame API server")
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)",
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory holding games and config",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode",
    )

    args = parser.parse_args()
    config = load_config(args.data_dir)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else getattr(logging, config["log_level"], logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # The factory below reads this when uvicorn imports the module
    os.environ["WEEKGAME_DATA_DIR"] = config["data_dir"]

    print("Starting weekgame API server")
    print(f"  Host: {args.host}")
    print(f"  Port: {args.port}")
    print(f"  Data: {config['data_dir']}")
    print()

    uvicorn.run(
        "weekgame.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="debug" if args.debug else "info",
    )


def get_app():
    """Factory function for creating the FastAPI app."""
    config = load_config()
    return create_app(data_dir=config["data_dir"], config=config)


# App instance for direct uvicorn usage
app = get_app()


if __name__ == "__main__":
    main()
