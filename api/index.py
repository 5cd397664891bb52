import logging

from app.core.logging_config import configure_logging
from app.main import app

# Configure logging before the first request so startup errors reach the platform logs
configure_logging()
logger = logging.getLogger(__name__)

logger.info("api/index.py initialized")

# ASGI entry point for serverless deployments
__all__ = ["app"]
