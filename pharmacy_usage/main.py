"""
FastAPI service for pharmacy AI usage accounting.

This service provides a REST API for:
- Reserving, completing and releasing metered AI messages
- Usage counters merged with live billing status
- System-wide user count aggregates for the admin dashboard

Usage:
    uvicorn pharmacy_usage.main:app --reload --host 0.0.0.0 --port 8002
"""

import logging
import os

from dotenv import load_dotenv

# Load environment variables before importing anything else
load_dotenv()

log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from pharmacy_usage.api import create_app  # noqa: E402
from pharmacy_usage.utils.env_utils import parse_bool_env, parse_int_env  # noqa: E402

app = create_app()

logger.info("Pharmacy usage API initialized")
logger.info("API documentation available at /docs and /redoc")


def run() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    host = os.getenv("API_HOST", "0.0.0.0")
    port = parse_int_env("API_PORT", 8002)
    reload = parse_bool_env("DEBUG", False)

    logger.info(f"Starting server on {host}:{port}")

    uvicorn.run(
        "pharmacy_usage.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level.lower(),
    )


if __name__ == "__main__":
    run()
