"""
Firebase Admin SDK bootstrap.

The app handle and Firestore client are built once at startup and handed to
the services that need them.
"""
import logging
import os

import firebase_admin
from firebase_admin import credentials, firestore
from google.cloud.firestore import Client as FirestoreClient

from .config import Settings

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "familyhub-subscriptions"


def initialize_firebase_app(settings: Settings) -> firebase_admin.App:
    """
    Initialize (or reuse) the named Firebase Admin app.

    Uses the service account file when present; otherwise falls back to
    application default credentials, which is what the emulator suite and
    managed runtimes provide.
    """
    try:
        return firebase_admin.get_app(FIREBASE_APP_NAME)
    except ValueError:
        pass

    try:
        if os.path.exists(settings.GOOGLE_APPLICATION_CREDENTIALS):
            cred = credentials.Certificate(settings.GOOGLE_APPLICATION_CREDENTIALS)
        else:
            logger.warning(
                f"Credentials file not found: {settings.GOOGLE_APPLICATION_CREDENTIALS}. "
                "Using application default credentials."
            )
            cred = credentials.ApplicationDefault()

        app = firebase_admin.initialize_app(
            cred,
            options={"projectId": settings.FIREBASE_PROJECT_ID},
            name=FIREBASE_APP_NAME,
        )
        logger.info("Firebase Admin SDK initialized successfully")
        return app

    except Exception as e:
        logger.error(f"Failed to initialize Firebase Admin SDK: {e}")
        raise RuntimeError(
            f"Firebase Admin SDK initialization failed: {e}\n"
            f"Check that {settings.GOOGLE_APPLICATION_CREDENTIALS} is valid."
        ) from e


def create_firestore_client(app: firebase_admin.App) -> FirestoreClient:
    """Firestore client bound to the given app."""
    return firestore.client(app)
