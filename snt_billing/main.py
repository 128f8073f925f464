"""Main application entry point."""

import logging
import os

import uvicorn
from dotenv import load_dotenv

from snt_billing.config import settings
from snt_billing.services.logging import setup_server_logging

# Load environment variables
load_dotenv()

# Configure logging (with file logging)
setup_server_logging(settings.log_file)
logger = logging.getLogger(__name__)


def main() -> None:
    """Run the billing API with uvicorn."""
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))

    logger.info(f"Starting Uvicorn server on {host}:{port}...")
    uvicorn.run(
        "snt_billing.api.app:app",
        host=host,
        port=port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
