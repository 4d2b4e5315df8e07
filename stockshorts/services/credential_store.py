"""Credential Store - YouTube OAuth token persistence and the web consent flow."""

import json
from pathlib import Path
from typing import Any, Optional

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from stockshorts.core.config import Settings
from stockshorts.core.errors import NoCredentialError


class CredentialStore:
    """
    Owns the process-wide YouTube credential.

    Only the OAuth callback mutates it (``exchange_code``); pipeline runs
    read it through ``get_valid_credentials``.
    """

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize the credential store.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger
        self.token_file = Path(settings.youtube_token_file)
        self._credentials: Optional[Credentials] = None
        self._pending_flow: Optional[Flow] = None

    def client_config(self) -> dict:
        if not self.settings.youtube_client_id or not self.settings.youtube_client_secret:
            raise ValueError(
                "YouTube OAuth client not configured. "
                "Set YOUTUBE_CLIENT_ID and YOUTUBE_CLIENT_SECRET in .env."
            )
        return {
            "web": {
                "client_id": self.settings.youtube_client_id,
                "client_secret": self.settings.youtube_client_secret,
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": "https://oauth2.googleapis.com/token",
                "redirect_uris": [self.settings.oauth_redirect_uri],
            }
        }

    def _new_flow(self) -> Flow:
        return Flow.from_client_config(
            self.client_config(),
            scopes=self.settings.youtube_api_scopes,
            redirect_uri=self.settings.oauth_redirect_uri,
        )

    def authorization_url(self) -> str:
        """Consent URL the user must visit to connect a YouTube account."""
        flow = self._new_flow()
        url, _state = flow.authorization_url(access_type="offline", prompt="consent")
        # the same flow instance carries the PKCE verifier into exchange_code
        self._pending_flow = flow
        return url

    def exchange_code(self, code: str) -> Credentials:
        """
        Trade an OAuth callback code for tokens and persist them.

        Args:
            code: The ``code`` query parameter from the OAuth callback

        Returns:
            The new credentials
        """
        flow = self._pending_flow or self._new_flow()
        flow.fetch_token(code=code)
        self._pending_flow = None
        self._credentials = flow.credentials
        self.save(self._credentials)
        self.logger.info("YouTube account connected")
        return self._credentials

    def load(self) -> Optional[Credentials]:
        """Load saved credentials from the token file, if any."""
        if self._credentials is not None:
            return self._credentials
        if not self.token_file.exists():
            return None
        try:
            self.logger.info(f"Loading YouTube token from: {self.token_file}")
            self._credentials = Credentials.from_authorized_user_file(
                str(self.token_file), self.settings.youtube_api_scopes
            )
        except (ValueError, json.JSONDecodeError) as e:
            self.logger.warning(f"Ignoring unreadable token file {self.token_file}: {e}")
            return None
        return self._credentials

    def save(self, credentials: Credentials) -> None:
        self.logger.info(f"Saving YouTube token to: {self.token_file}")
        self.token_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.token_file, "w", encoding="utf-8") as f:
            f.write(credentials.to_json())

    def consent_entry_url(self) -> Optional[str]:
        """
        Where a user goes to (re)connect YouTube: this app's /auth route.

        Only /auth builds the Google flow, so the PKCE verifier held for the
        callback is never replaced by a credential check.
        """
        if not self.settings.youtube_client_id or not self.settings.youtube_client_secret:
            self.logger.warning("YouTube OAuth client not configured; no consent link available")
            return None
        return f"{self.settings.app_base_url.rstrip('/')}/auth"

    def _usable_credentials(self) -> Optional[Credentials]:
        creds = self.load()
        if creds is not None and not creds.valid and creds.expired and creds.refresh_token:
            self.logger.info("Refreshing YouTube token...")
            try:
                creds.refresh(Request())
                self.save(creds)
            except RefreshError as e:
                self.logger.warning(f"YouTube token refresh failed: {e}")

        if creds is None or not creds.valid:
            return None
        return creds

    def get_valid_credentials(self) -> Credentials:
        """
        Return usable credentials, refreshing an expired token if possible.

        Blocking: a refresh is an HTTPS round-trip.

        Raises:
            NoCredentialError: No token, or the token cannot be refreshed
        """
        creds = self._usable_credentials()
        if creds is None:
            raise NoCredentialError(self.consent_entry_url())
        return creds

    def has_valid_credentials(self) -> bool:
        return self._usable_credentials() is not None
