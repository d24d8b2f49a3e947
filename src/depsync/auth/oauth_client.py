"""Delegated sign-in against the Microsoft identity platform."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Sequence

from depsync.errors import AuthError, InvalidArgumentError
from depsync.util.time import parse_rfc3339

from .auth_info import AuthInfo, is_identity_platform_url

_LOGGER = logging.getLogger(__name__)

_CACHED_FIELDS = ("refresh_token", "token_uri", "client_id", "client_secret")
_EXPIRED = datetime(1970, 1, 1)


class OAuthClient:
    """
    Obtain Graph credentials for an Entra app registration.

    A cached authorized-user token is reused (and refreshed) when possible;
    otherwise the browser sign-in runs once and the new token is cached.
    """

    def __init__(self, auth_info: AuthInfo) -> None:
        if not isinstance(auth_info, AuthInfo):
            raise InvalidArgumentError("OAuthClient requires an AuthInfo")
        self._auth_info = auth_info

    def get_credentials(self, scopes: Sequence[str], ensure_valid: bool = True):
        """
        Return credentials for the given Graph scopes.

        Args:
            scopes: Delegated scopes, e.g. DeviceManagementServiceConfig.ReadWrite.All.
            ensure_valid: If False, a cached token is returned as loaded.

        Returns:
            google.oauth2.credentials.Credentials

        Raises:
            AuthError: if the cached token cannot be used and sign-in fails.
            InvalidArgumentError: if scopes is empty.
        """
        if not scopes or not all(isinstance(s, str) and s.strip() for s in scopes):
            raise InvalidArgumentError("scopes must be a non-empty sequence of strings")

        # The identity platform leaves offline_access out of the granted scopes.
        os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")

        creds = self._load_cached(scopes)
        if creds is not None:
            if not ensure_valid:
                return creds
            if not creds.valid and creds.refresh_token:
                self._refresh(creds)
            if creds.valid:
                return creds
            _LOGGER.info("Cached token in %s is no longer usable", self._auth_info.token_file)

        creds = self._sign_in(scopes)
        self._save_credentials(creds)
        return creds

    def build_graph_session(self, scopes: Sequence[str], ensure_valid: bool = True):
        """
        Build an authorized requests session for Microsoft Graph.

        Returns:
            google.auth.transport.requests.AuthorizedSession
        """
        from google.auth.transport.requests import AuthorizedSession

        creds = self.get_credentials(scopes=scopes, ensure_valid=ensure_valid)
        return AuthorizedSession(creds)

    def _load_cached(self, scopes: Sequence[str]):
        """
        Rebuild credentials from the token cache.

        google-auth's authorized-user loader always points token_uri at
        Google, so the credentials are built from the cached fields directly
        and only a login.microsoftonline.com token endpoint is accepted.
        """
        from google.oauth2.credentials import Credentials

        token_file = self._auth_info.token_file
        if not os.path.exists(token_file):
            _LOGGER.debug("No cached token at %s", token_file)
            return None
        try:
            with open(token_file, encoding="utf-8") as f:
                info = json.load(f)
        except (OSError, ValueError) as exc:
            raise AuthError(
                "Failed to load token_file",
                details={"token_file": token_file},
                cause=exc,
            ) from exc

        if not isinstance(info, dict):
            raise AuthError("token_file is not a JSON object", details={"token_file": token_file})
        missing = [key for key in _CACHED_FIELDS if not info.get(key)]
        if missing:
            raise AuthError(
                "Cached token is incomplete",
                details={"token_file": token_file, "missing": missing},
            )
        if not is_identity_platform_url(info["token_uri"]):
            raise AuthError(
                "Cached token was not issued by the Microsoft identity platform",
                details={"token_file": token_file, "token_uri": info["token_uri"]},
            )

        return Credentials(
            token=info.get("token"),
            refresh_token=info["refresh_token"],
            token_uri=info["token_uri"],
            client_id=info["client_id"],
            client_secret=info["client_secret"],
            scopes=list(scopes),
            expiry=_cached_expiry(info.get("expiry")),
        )

    def _refresh(self, creds) -> None:
        from google.auth.exceptions import RefreshError, TransportError
        from google.auth.transport.requests import Request

        _LOGGER.debug("Refreshing access token from %s", self._auth_info.token_file)
        try:
            creds.refresh(Request())
        except RefreshError as exc:
            # Revoked or expired refresh token: fall through to a new sign-in.
            _LOGGER.warning("Token refresh was rejected: %s", exc)
            return
        except TransportError as exc:
            raise AuthError(
                "Could not reach the token endpoint",
                details={"token_file": self._auth_info.token_file},
                cause=exc,
            ) from exc
        self._save_credentials(creds)

    def _sign_in(self, scopes: Sequence[str]):
        from google_auth_oauthlib.flow import InstalledAppFlow

        info = self._auth_info
        _LOGGER.info("Opening browser sign-in for the Graph app registration")
        try:
            if info.uses_secrets_file:
                flow = InstalledAppFlow.from_client_secrets_file(
                    info.client_secrets_file,
                    scopes=list(scopes),
                )
            else:
                flow = InstalledAppFlow.from_client_config(
                    info.client_config(),
                    scopes=list(scopes),
                )
            return flow.run_local_server(port=0)
        except Exception as exc:
            raise AuthError(
                "Interactive sign-in failed",
                details={
                    "client_secrets_file": info.client_secrets_file,
                    "tenant_id": info.tenant_id,
                },
                cause=exc,
            ) from exc

    def _save_credentials(self, creds) -> None:
        token_file = self._auth_info.token_file
        token_dir = os.path.dirname(token_file)
        try:
            if token_dir:
                os.makedirs(token_dir, exist_ok=True)
            with open(token_file, "w", encoding="utf-8") as f:
                f.write(creds.to_json())
        except OSError as exc:
            raise AuthError(
                "Failed to save OAuth token file",
                details={"token_file": token_file},
                cause=exc,
            ) from exc


def _cached_expiry(value: object) -> datetime:
    """Naive UTC expiry as google-auth expects. Missing or unreadable means expired."""
    if not value:
        return _EXPIRED
    try:
        dt = parse_rfc3339(str(value))
    except ValueError:
        return _EXPIRED
    return dt.astimezone(timezone.utc).replace(tzinfo=None)
