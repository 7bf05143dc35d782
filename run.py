#!/usr/bin/env python3
"""
Standalone script to run the FamilyHub Subscription Backend.
This script can be used to start the server directly.
"""

import logging
import sys
import uvicorn

from app.core.config import settings

def main():
    """Main entry point for the application."""

    # Setup logging
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    logger = logging.getLogger(__name__)

    logger.info("Starting FamilyHub Subscription Backend")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Host: {settings.API_HOST}")
    logger.info(f"Port: {settings.API_PORT}")
    logger.info(f"Firebase Project: {settings.FIREBASE_PROJECT_ID}")
    logger.info(f"Google Play validation: {'live' if settings.google_play_configured else 'mock'}")
    logger.info(f"App Store validation: {'live' if settings.appstore_configured else 'mock'}")

    try:
        # Run the application
        uvicorn.run(
            "app.main:app",
            host=settings.API_HOST,
            port=settings.API_PORT,
            reload=settings.DEBUG and settings.is_development,
            log_level=settings.LOG_LEVEL.lower(),
            access_log=True
        )

    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.error(f"Failed to start server: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
