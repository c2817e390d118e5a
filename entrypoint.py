import os

import uvicorn

from logging_config import setup_logging

# Setup logging before importing app so module loggers pick up the handlers
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)

from app import app
from constants import REALTIME_STRATEGY
from logging_config import get_logger

logger = get_logger(__name__)

if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))
    logger.info(f"Starting EphemeralChat server on {host}:{port} (realtime: {REALTIME_STRATEGY})")
    # Event streams are long-lived; give them a moment to close on shutdown
    uvicorn.run(app, host=host, port=port, timeout_graceful_shutdown=5)
