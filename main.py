"""
Booking functions entry point.

Serves the FastAPI app with uvicorn, or runs the offline console demo.

Usage:
    HTTP server:  python main.py serve
    Console mode: python main.py console [--scenario weekly|pack|lead|declined|crm-down]
"""

import logging
import sys

from scooops.config import load_config

logger = logging.getLogger(__name__)


def _run_server() -> None:
    """Start the HTTP functions (requires Stripe and Sweep&GO keys for signups)."""
    import uvicorn

    from scooops.api import create_app

    config = load_config()
    app = create_app(config)
    logger.info("Serving on %s:%s", config.host, config.port)
    uvicorn.run(app, host=config.host, port=config.port)


def _run_console_mode(argv: list[str]) -> None:
    """Start the offline console demo (no API keys required)."""
    from console_demo import main as console_main

    console_main(argv)


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "console":
        _run_console_mode(sys.argv[2:])
    else:
        _run_server()
