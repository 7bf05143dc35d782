"""
Request dependencies: caller identity and the services built at startup.
"""
import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth

from app.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_uid(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """
    Firebase UID of the caller, or None when unauthenticated.

    Handlers reject a None caller themselves so that the unauthenticated
    check runs in the same order as the other request checks.
    """
    if credentials is None or not credentials.credentials:
        return None

    firebase_app = getattr(request.app.state, "firebase_app", None)
    try:
        decoded_token = auth.verify_id_token(credentials.credentials, app=firebase_app)
    except (auth.InvalidIdTokenError, auth.ExpiredIdTokenError, auth.RevokedIdTokenError) as e:
        logger.warning(f"Rejected Firebase ID token: {e}")
        return None
    except ValueError as e:
        logger.warning(f"Malformed Firebase ID token: {e}")
        return None

    return decoded_token.get("uid")


def get_subscription_service(request: Request) -> SubscriptionService:
    return request.app.state.subscription_service
