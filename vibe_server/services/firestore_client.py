"""
Shared Firestore client setup for the Firestore-backed stores.

All stores reuse the same Firebase app (same credentials_path and project_id) and talk to
Firestore through google.cloud.firestore.AsyncClient.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Union

import firebase_admin
from firebase_admin import credentials
from google.cloud.firestore import AsyncClient
from google.oauth2 import service_account

from recommender.errors import ConfigurationError

logger = logging.getLogger(__name__)


def _project_id_from_credentials_file(credentials_path: Union[Path, str]) -> Optional[str]:
    """Read project_id from a Google service account JSON file if present."""
    try:
        with open(credentials_path) as f:
            data = json.load(f)
    except (OSError, ValueError):
        return None
    return data.get("project_id") or data.get("projectId")


def create_async_client(
    project_id: Optional[str] = None,
    credentials_path: Optional[Union[Path, str]] = None,
) -> AsyncClient:
    """
    Initialise the Firebase app once and return an AsyncClient.

    Raises ConfigurationError when the service account file is missing.
    """
    if not credentials_path:
        raise ConfigurationError("Firestore requires FIREBASE_CREDENTIALS_PATH")
    cred_path = Path(credentials_path).resolve()
    if not cred_path.is_file():
        raise ConfigurationError(f"Firebase credentials file not found: {cred_path}")

    project = project_id or _project_id_from_credentials_file(cred_path)
    if not firebase_admin._apps:
        opts = {"projectId": project} if project else None
        firebase_admin.initialize_app(credentials.Certificate(str(cred_path)), opts)

    creds = service_account.Credentials.from_service_account_file(str(cred_path))
    logger.info("[startup] Firestore client for project %s", project)
    return AsyncClient(project=project, credentials=creds)
