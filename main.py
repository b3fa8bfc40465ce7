"""
AMP Tracker -- HTTP server entry point.

Usage:
    python main.py                         # bind to AMP_HOST:AMP_PORT, reload when AMP_DEV_MODE=1
    uvicorn main:app --host 0.0.0.0 --port 8000

uvicorn's own logging config is disabled so its records go through the
structlog handler installed by ``create_app``.
"""

from __future__ import annotations

import uvicorn

from src.api import create_app
from src.config.settings import get_settings

app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.dev_mode,
        log_config=None,
    )


if __name__ == "__main__":
    run()
