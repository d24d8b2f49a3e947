"""Where to find the Entra app registration and the cached sign-in token."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlparse

AUTHORITY = "https://login.microsoftonline.com"
AUTHORITY_HOST = "login.microsoftonline.com"


@dataclass(slots=True, frozen=True)
class AuthInfo:
    """
    Authentication information for the delegated Graph sign-in.

    The app registration is given either as client_secrets_file (an
    "installed"-style client config JSON whose auth_uri/token_uri point at
    login.microsoftonline.com) or as tenant_id + client_id + client_secret,
    from which the same config is built. token_file is where the
    authorized-user token is cached between runs.
    """

    token_file: str
    client_secrets_file: Optional[str] = None
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    def __post_init__(self) -> None:
        if not _filled(self.token_file):
            raise ValueError("AuthInfo.token_file must be a non-empty string")

        if self.client_secrets_file is not None:
            if not _filled(self.client_secrets_file):
                raise ValueError("AuthInfo.client_secrets_file must be a non-empty string")
            return

        missing = [
            name
            for name in ("tenant_id", "client_id", "client_secret")
            if not _filled(getattr(self, name))
        ]
        if missing:
            raise ValueError(
                "AuthInfo needs client_secrets_file or tenant_id/client_id/client_secret "
                f"(missing: {', '.join(missing)})"
            )

    @property
    def uses_secrets_file(self) -> bool:
        return self.client_secrets_file is not None

    def client_config(self) -> dict[str, Any]:
        """Installed-app client config for the tenant's v2.0 endpoints."""
        if self.uses_secrets_file:
            raise ValueError("client_config() is only available without client_secrets_file")
        base = f"{AUTHORITY}/{self.tenant_id}/oauth2/v2.0"
        return {
            "installed": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": f"{base}/authorize",
                "token_uri": f"{base}/token",
                "redirect_uris": ["http://localhost"],
            }
        }


def _filled(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip())


def is_identity_platform_url(url: object) -> bool:
    """True for an https URL on the Microsoft identity platform host."""
    if not isinstance(url, str):
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme == "https" and (parsed.hostname or "").lower() == AUTHORITY_HOST
