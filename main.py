"""
Visitflow Scheduling API
Entry point: `python main.py` or `uvicorn main:app`
"""

import uvicorn

from visitflow.core.config import settings
from visitflow.main import app  # noqa: F401

if __name__ == "__main__":
    uvicorn.run(
        # Use import string so reload/workers work correctly
        "visitflow.main:app",
        host=settings.host,
        port=settings.port,
        reload=not settings.is_production,
        log_level=settings.LOG_LEVEL.lower()
    )
