"""
Google OAuth authentication for gdupload.

Reads the OAuth client secrets, reuses a saved token when possible and
otherwise walks the user through the browser consent flow. The token record
is stored as JSON with ``access_token``, ``refresh_token``, ``expiry`` and
``token_type`` fields.
"""

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
import requests
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from oauthlib.oauth2.rfc6749.errors import OAuth2Error

from gdupload.drive import DriveService
from gdupload.exceptions import ConfigurationError, LocalIOError, RemoteAPIError
from gdupload.server import AccessTokenServer

logger = logging.getLogger(__name__)

DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive"]
DEFAULT_PORT = 8888
DEFAULT_AUTH_TIMEOUT = 120.0

_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def load_client_config(path: Path) -> Dict[str, Any]:
    """
    Load an OAuth client secrets file downloaded from the Google Cloud console.

    Raises:
        ConfigurationError: If the file is missing, is not JSON, or holds
            neither an ``installed`` nor a ``web`` client.
    """
    try:
        data = json.loads(Path(path).read_text())
    except FileNotFoundError as e:
        raise ConfigurationError(f"read credentials file {path}", e) from e
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"parse credentials file {path}", e) from e

    if not isinstance(data, dict) or not ("installed" in data or "web" in data):
        raise ConfigurationError(
            f"parse credentials file {path}",
            ValueError("expected an 'installed' or 'web' OAuth client"),
        )
    return data


def _client_section(client_config: Dict[str, Any]) -> Dict[str, Any]:
    return client_config.get("installed") or client_config["web"]


def parse_expiry(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 expiry into the naive UTC datetime google-auth expects."""
    if not value:
        return None
    text = _FRACTION_RE.sub(r"\1", value.strip()).replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.warning("Ignoring unparseable token expiry %r", value)
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def token_from_file(
    path: Path, client_config: Dict[str, Any], scopes: Optional[List[str]] = None
) -> Optional[Credentials]:
    """
    Load saved credentials from a token record.

    Returns:
        Credentials, or None when the file does not exist or is unreadable.
    """
    path = Path(path)
    if not path.exists():
        return None
    try:
        record = json.loads(path.read_text())
        access_token = record["access_token"]
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning("Ignoring unreadable token file %s: %s", path, e)
        return None

    client = _client_section(client_config)
    return Credentials(
        token=access_token,
        refresh_token=record.get("refresh_token"),
        token_uri=client.get("token_uri", "https://oauth2.googleapis.com/token"),
        client_id=client.get("client_id"),
        client_secret=client.get("client_secret"),
        scopes=scopes or DRIVE_SCOPES,
        expiry=parse_expiry(record.get("expiry")),
    )


def save_token(path: Path, credentials: Credentials) -> None:
    """Write the token record for ``credentials`` to ``path`` (mode 0600)."""
    expiry = None
    if credentials.expiry is not None:
        expiry = credentials.expiry.replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")
    record = {
        "access_token": credentials.token,
        "token_type": "Bearer",
        "refresh_token": credentials.refresh_token,
        "expiry": expiry,
    }
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(record, indent=2))
        path.chmod(0o600)
    except OSError as e:
        raise LocalIOError(f"save token to {path}", e) from e


class GoogleAuth:
    """
    Obtains authorized Google credentials for Drive.

    Args:
        credentials_file: OAuth client secrets JSON.
        token_file: Where the token record is read from and saved to.
        port: Local port receiving the OAuth redirect.
        timeout: Seconds to wait for the browser consent.
        scopes: OAuth scopes to request.
    """

    def __init__(
        self,
        credentials_file: Path,
        token_file: Path,
        port: int = DEFAULT_PORT,
        timeout: float = DEFAULT_AUTH_TIMEOUT,
        scopes: Optional[List[str]] = None,
    ) -> None:
        self.credentials_file = Path(credentials_file)
        self.token_file = Path(token_file)
        self.port = port
        self.timeout = timeout
        self.scopes = scopes or list(DRIVE_SCOPES)

    @property
    def redirect_url(self) -> str:
        return f"http://localhost:{self.port}"

    def get_credentials(self) -> Credentials:
        """
        Return valid credentials, refreshing or re-authorizing as needed.

        Raises:
            ConfigurationError: If the client secrets are missing or invalid.
            AuthTimeoutError: If the browser consent does not complete in time.
            RemoteAPIError: If the code exchange fails.
        """
        client_config = load_client_config(self.credentials_file)

        credentials = token_from_file(self.token_file, client_config, self.scopes)
        if credentials is not None:
            if credentials.valid:
                return credentials
            if credentials.refresh_token:
                try:
                    credentials.refresh(Request())
                    save_token(self.token_file, credentials)
                    logger.info("Refreshed access token")
                    return credentials
                except (RefreshError, TransportError) as e:
                    logger.warning("Saved token could not be refreshed (%s); re-authorizing", e)

        credentials = self._token_from_web(client_config)
        save_token(self.token_file, credentials)
        return credentials

    def _token_from_web(self, client_config: Dict[str, Any]) -> Credentials:
        flow = Flow.from_client_config(
            client_config, scopes=self.scopes, redirect_uri=self.redirect_url
        )
        auth_url, _ = flow.authorization_url(access_type="offline", prompt="consent")
        click.echo(f"Go to the following link in your browser:\n{auth_url}\n")
        click.echo("Waiting for access token...")

        code = AccessTokenServer(self.port).wait_for_code(self.timeout)

        try:
            flow.fetch_token(code=code)
        except (OAuth2Error, requests.RequestException) as e:
            raise RemoteAPIError("exchange authorization code for token", e) from e
        return flow.credentials

    def build_drive_service(self) -> DriveService:
        return DriveService.from_credentials(self.get_credentials())
