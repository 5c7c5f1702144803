"""
Firebase Admin SDK app initialization shared by FCM and Firestore.
"""

import logging
from pathlib import Path
from typing import Optional

import firebase_admin
from firebase_admin import credentials

from herald.services.push.models import ProviderConfigurationError

logger = logging.getLogger(__name__)


def app_name_for(project_id: str) -> str:
    return f"herald-{project_id}"


def get_firebase_app(project_id: str, credentials_path: Optional[str] = None) -> "firebase_admin.App":
    """
    Return the Firebase app for ``project_id``, initializing it once.

    Args:
        project_id: Firebase project ID
        credentials_path: Service account JSON; application default
            credentials are used when omitted

    Raises:
        ProviderConfigurationError: If the credentials file is missing or invalid
    """
    name = app_name_for(project_id)
    try:
        app = firebase_admin.get_app(name)
        logger.debug(f"Using existing Firebase app: {name}")
        return app
    except ValueError:
        pass

    try:
        if credentials_path:
            creds_path = Path(credentials_path)
            if not creds_path.exists():
                raise ProviderConfigurationError(
                    f"Firebase credentials file not found: {creds_path}"
                )
            cred = credentials.Certificate(str(creds_path))
        else:
            cred = credentials.ApplicationDefault()

        app = firebase_admin.initialize_app(
            cred,
            name=name,
            options={"projectId": project_id},
        )
    except ProviderConfigurationError:
        raise
    except (ValueError, IOError) as e:
        raise ProviderConfigurationError(f"Firebase initialization failed: {e}") from e

    logger.info(
        "Firebase Admin SDK initialized",
        extra={"app_name": name, "project_id": project_id},
    )
    return app


def delete_firebase_app(app: "firebase_admin.App") -> None:
    """Delete an app created by get_firebase_app."""
    try:
        firebase_admin.delete_app(app)
        logger.debug("Firebase app deleted", extra={"app_name": app.name})
    except ValueError as e:
        logger.warning(f"Error deleting Firebase app: {e}")
