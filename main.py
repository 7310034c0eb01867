#!/usr/bin/env python3
"""Main entry point for the debate arena server."""

import logging
import os
import sys


def setup_logging():
    """Configure logging for the web server."""
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def print_usage():
    """Print usage information for local development."""
    print("Debate Arena")
    print("=" * 40)
    print("Start the API server:")
    print("   python main.py --web")
    print()
    print("Environment:")
    print("   OPENROUTER_API_KEY  gateway credentials")
    print("   SERVER_TOKEN        bearer token for operator endpoints")
    print("   DEBATE_CONFIG       config file path (default debate_config.json)")
    print()


def start_web_server():
    """Start the FastAPI web server."""
    setup_logging()

    import uvicorn

    from web.api import app

    port = int(os.environ.get("PORT", 8000))
    print(f"Starting Debate Arena on port {port}")
    print(f"API Documentation: http://localhost:{port}/docs")

    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info", access_log=True)


def main():
    """Main entry point."""
    # Check for production environment (Railway, Docker, Heroku, etc.)
    is_production = any([
        "RAILWAY_ENVIRONMENT" in os.environ,
        "PORT" in os.environ,
        "DYNO" in os.environ,
        os.environ.get("ENVIRONMENT") == "production",
    ])

    if is_production or "--web" in sys.argv:
        start_web_server()
    else:
        print_usage()


if __name__ == "__main__":
    main()
