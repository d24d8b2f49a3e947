"""Environment-driven settings for the depsync CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from depsync.auth import AuthInfo
from depsync.controller.fields import DEFAULT_BASE_URL
from depsync.errors import InvalidArgumentError
from depsync.removal import DEFAULT_SETTLE_DELAY

ENV_CLIENT_SECRETS = "DEPSYNC_CLIENT_SECRETS"
ENV_TOKEN_FILE = "DEPSYNC_TOKEN_FILE"
ENV_TENANT_ID = "DEPSYNC_TENANT_ID"
ENV_CLIENT_ID = "DEPSYNC_CLIENT_ID"
ENV_CLIENT_SECRET = "DEPSYNC_CLIENT_SECRET"
ENV_GRAPH_URL = "DEPSYNC_GRAPH_URL"
ENV_SCOPES = "DEPSYNC_SCOPES"
ENV_SETTLE_DELAY = "DEPSYNC_SETTLE_DELAY"


@dataclass(slots=True, frozen=True)
class Settings:
    """
    Runtime settings.

    token_file plus either client_secrets_file or tenant_id/client_id/
    client_secret are required before building an AuthInfo; everything
    else has a default.
    """

    client_secrets_file: Optional[str] = None
    token_file: Optional[str] = None
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    graph_url: str = DEFAULT_BASE_URL
    scopes: Optional[tuple[str, ...]] = None
    settle_delay: float = DEFAULT_SETTLE_DELAY

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        scopes_raw = env.get(ENV_SCOPES, "").strip()
        scopes = None
        if scopes_raw:
            scopes = tuple(s.strip() for s in scopes_raw.split(",") if s.strip())

        settle_raw = env.get(ENV_SETTLE_DELAY, "").strip()
        settle_delay = DEFAULT_SETTLE_DELAY
        if settle_raw:
            try:
                settle_delay = float(settle_raw)
            except ValueError as exc:
                raise InvalidArgumentError(
                    f"{ENV_SETTLE_DELAY} must be a number of seconds",
                    details={"value": settle_raw},
                    cause=exc,
                ) from exc
            if settle_delay < 0:
                raise InvalidArgumentError(f"{ENV_SETTLE_DELAY} must not be negative")

        return cls(
            client_secrets_file=env.get(ENV_CLIENT_SECRETS, "").strip() or None,
            token_file=env.get(ENV_TOKEN_FILE, "").strip() or None,
            tenant_id=env.get(ENV_TENANT_ID, "").strip() or None,
            client_id=env.get(ENV_CLIENT_ID, "").strip() or None,
            client_secret=env.get(ENV_CLIENT_SECRET, "").strip() or None,
            graph_url=env.get(ENV_GRAPH_URL, "").strip() or DEFAULT_BASE_URL,
            scopes=scopes or None,
            settle_delay=settle_delay,
        )

    def override(self, **changes: object) -> "Settings":
        """Return a copy with every non-None value in changes applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def auth_info(self) -> AuthInfo:
        """
        Build AuthInfo from the settings.

        A client secrets file wins over tenant/client id/secret when both
        are set.

        Raises:
            InvalidArgumentError: if the token file or the app registration
                is missing.
        """
        missing: list[str] = []
        if not self.token_file:
            missing.append(ENV_TOKEN_FILE)
        if not self.client_secrets_file:
            missing.extend(
                name
                for name, value in (
                    (ENV_TENANT_ID, self.tenant_id),
                    (ENV_CLIENT_ID, self.client_id),
                    (ENV_CLIENT_SECRET, self.client_secret),
                )
                if not value
            )
        if missing:
            raise InvalidArgumentError(
                "Missing OAuth configuration",
                details={
                    "missing": missing,
                    "hint": f"Set {ENV_CLIENT_SECRETS}, or the tenant/client id/secret",
                },
            )
        if self.client_secrets_file:
            return AuthInfo(token_file=self.token_file, client_secrets_file=self.client_secrets_file)
        return AuthInfo(
            token_file=self.token_file,
            tenant_id=self.tenant_id,
            client_id=self.client_id,
            client_secret=self.client_secret,
        )
