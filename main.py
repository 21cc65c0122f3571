"""
Ride Dispatch Backend
=====================
Entry point for the HTTP API.

    uvicorn main:app            # production style
    python main.py              # development, auto-reload outside production
"""

import uvicorn

from ride_dispatch.api.app import create_app
from ride_dispatch.config import settings

app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment != "production",
        log_config=None,  # keep the handlers installed by setup_logging
    )
