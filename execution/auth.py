"""OAuth 2.0 helper for the Google Sheets, Slides and Drive APIs.

Locally the installed-app flow runs once and caches token.json in the
project root. On a server, GOOGLE_TOKEN_JSON holds the token contents and no
browser is ever opened.
"""

import json
import os
from pathlib import Path

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

# Sheets for configuration and data, Slides for the deck, Drive for copying
# the template and resolving images
SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/presentations",
    "https://www.googleapis.com/auth/drive",
]

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_CREDENTIALS_PATH = _PROJECT_ROOT / "credentials.json"
_TOKEN_PATH = _PROJECT_ROOT / "token.json"


def _cached_credentials() -> tuple[Credentials | None, bool]:
    """Return (credentials, from_env). GOOGLE_TOKEN_JSON wins over token.json."""
    token_json = os.getenv("GOOGLE_TOKEN_JSON")
    if token_json:
        return Credentials.from_authorized_user_info(json.loads(token_json), SCOPES), True
    if _TOKEN_PATH.exists():
        return Credentials.from_authorized_user_file(str(_TOKEN_PATH), SCOPES), False
    return None, False


def _run_consent_flow() -> Credentials:
    if not _CREDENTIALS_PATH.exists():
        raise FileNotFoundError(
            f"credentials.json not found at {_CREDENTIALS_PATH}\n"
            "Create an OAuth client ID of type Desktop app in Google Cloud Console "
            "and save its JSON there."
        )
    flow = InstalledAppFlow.from_client_secrets_file(str(_CREDENTIALS_PATH), SCOPES)
    return flow.run_local_server(port=0)


def get_credentials(server_mode: bool = False) -> Credentials:
    """Load cached credentials, refresh if expired, or run the OAuth flow.

    Args:
        server_mode: If True, never open a browser. Raises RuntimeError when
                     no usable token is available.
    """
    creds, from_env = _cached_credentials()

    if creds and creds.expired and creds.refresh_token:
        creds.refresh(Request())
    elif not creds or not creds.valid:
        if server_mode:
            raise RuntimeError(
                "No valid Google credentials available in server mode. "
                "Set GOOGLE_TOKEN_JSON to the contents of a valid token.json, "
                "or run the CLI locally once to create token.json."
            )
        creds = _run_consent_flow()

    # An env-provided token is never written to disk
    if not from_env:
        _TOKEN_PATH.write_text(creds.to_json())

    return creds


def build_services(server_mode: bool = False) -> tuple:
    """Return (sheets, slides, drive) resources sharing one set of credentials."""
    creds = get_credentials(server_mode)
    return (
        build("sheets", "v4", credentials=creds),
        build("slides", "v1", credentials=creds),
        build("drive", "v3", credentials=creds),
    )
