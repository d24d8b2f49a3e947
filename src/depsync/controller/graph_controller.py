"""Microsoft Graph controller for Intune DEP tokens and managed devices."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional, Sequence, TypeVar

import requests

from depsync.auth import AuthInfo, OAuthClient
from depsync.errors import (
    ApiError,
    DepSyncError,
    HttpErrorInfo,
    InvalidArgumentError,
    NetworkError,
    RateLimitError,
    map_http_error,
)
from depsync.models import EnrolledDeviceIdentity, EnrollmentToken, ManagedDeviceRecord
from depsync.util.serial import odata_quote
from depsync.util.time import parse_rfc3339

from .fields import (
    DEFAULT_BASE_URL,
    IDENTITIES_PATH,
    IDENTITY_FIELDS,
    IDENTITY_PATH,
    MANAGED_DEVICE_FIELDS,
    MANAGED_DEVICE_PATH,
    MANAGED_DEVICES_PATH,
    NEXT_LINK_KEY,
    TOKEN_FIELDS,
    TOKEN_PATH,
    TOKEN_SYNC_PATH,
    TOKENS_PATH,
)

T = TypeVar("T")

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class _RetryPolicy:
    max_retries: int = 3
    initial_delay_sec: float = 1.0


class GraphController:
    """
    Graph API controller.

    Notes:
        - The HTTP session is NOT exposed.
        - Reads are retried on throttling, 5xx and network errors.
          Mutations (trigger/delete) are sent exactly once.
    """

    DEFAULT_SCOPES: tuple[str, ...] = (
        "https://graph.microsoft.com/DeviceManagementServiceConfig.ReadWrite.All",
        "https://graph.microsoft.com/DeviceManagementManagedDevices.ReadWrite.All",
        "offline_access",
    )

    def __init__(
        self,
        auth_info: AuthInfo,
        *,
        scopes: Optional[Sequence[str]] = None,
        base_url: str = DEFAULT_BASE_URL,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._retry_policy = _RetryPolicy()

        use_scopes = list(scopes) if scopes is not None else list(self.DEFAULT_SCOPES)
        client = OAuthClient(auth_info)
        self._session = client.build_graph_session(use_scopes, ensure_valid=True)

    @classmethod
    def from_session(
        cls,
        session: Any,
        *,
        base_url: str = DEFAULT_BASE_URL,
    ) -> "GraphController":
        """Create controller from a pre-built HTTP session (useful for tests)."""
        obj = cls.__new__(cls)
        obj._base_url = base_url.rstrip("/")
        obj._retry_policy = _RetryPolicy()
        obj._session = session
        return obj

    # ----------------------------
    # Enrollment tokens
    # ----------------------------
    def list_enrollment_tokens(self) -> list[EnrollmentToken]:
        """Return every DEP token in the order Graph lists them."""
        tokens: list[EnrollmentToken] = []
        for item in self._iter_items(
            TOKENS_PATH,
            params={"$select": TOKEN_FIELDS},
            context={"operation": "list_enrollment_tokens"},
        ):
            tokens.append(_token_dict_to_token(item))
        return tokens

    def get_enrollment_token(self, token_id: str) -> EnrollmentToken:
        _require_id(token_id, "token_id")
        data = self._get_json(
            TOKEN_PATH.format(token_id=token_id),
            params={"$select": TOKEN_FIELDS},
            context={"operation": "get_enrollment_token", "token_id": token_id},
        )
        return _token_dict_to_token(data)

    def trigger_enrollment_sync(self, token_id: str) -> None:
        """Ask Intune to sync the token with Apple. Never retried."""
        _require_id(token_id, "token_id")
        self._send(
            "POST",
            TOKEN_SYNC_PATH.format(token_id=token_id),
            context={"operation": "trigger_enrollment_sync", "token_id": token_id},
        )

    # ----------------------------
    # Managed devices
    # ----------------------------
    def find_managed_device(self, serial_number: str) -> Optional[ManagedDeviceRecord]:
        """
        Look up a managed device by exact serial number.

        Returns:
            The first match, or None when Intune has no such device.
        """
        _require_id(serial_number, "serial_number")
        context = {"operation": "find_managed_device", "serial_number": serial_number}
        matches = [
            _device_dict_to_record(item)
            for item in self._iter_items(
                MANAGED_DEVICES_PATH,
                params={
                    "$filter": f"serialNumber eq {odata_quote(serial_number)}",
                    "$select": MANAGED_DEVICE_FIELDS,
                },
                context=context,
            )
        ]
        if not matches:
            return None
        if len(matches) > 1:
            _LOGGER.warning(
                "Serial %s matches %d managed devices; using %s",
                serial_number,
                len(matches),
                matches[0].device_id,
            )
        return matches[0]

    def delete_managed_device(self, device_id: str) -> None:
        _require_id(device_id, "device_id")
        self._send(
            "DELETE",
            MANAGED_DEVICE_PATH.format(device_id=device_id),
            context={"operation": "delete_managed_device", "device_id": device_id},
        )

    # ----------------------------
    # Enrolled device identities (token roster)
    # ----------------------------
    def iter_enrolled_identities(self, token_id: str) -> Iterator[EnrolledDeviceIdentity]:
        """
        Lazily yield the token's roster, following @odata.nextLink.

        Each call starts again from the first page.
        """
        _require_id(token_id, "token_id")
        for item in self._iter_items(
            IDENTITIES_PATH.format(token_id=token_id),
            params={"$select": IDENTITY_FIELDS},
            context={"operation": "list_enrolled_identities", "token_id": token_id},
        ):
            yield _identity_dict_to_identity(item)

    def remove_enrolled_identity(self, token_id: str, identity_id: str) -> None:
        _require_id(token_id, "token_id")
        _require_id(identity_id, "identity_id")
        self._send(
            "DELETE",
            IDENTITY_PATH.format(token_id=token_id, identity_id=identity_id),
            context={
                "operation": "remove_enrolled_identity",
                "token_id": token_id,
                "identity_id": identity_id,
            },
        )

    # ----------------------------
    # Internals
    # ----------------------------
    def _url(self, path_or_url: str) -> str:
        if path_or_url.startswith("https://") or path_or_url.startswith("http://"):
            return path_or_url
        return self._base_url + path_or_url

    def _iter_items(
        self,
        path: str,
        *,
        params: Optional[dict[str, str]],
        context: dict[str, Any],
    ) -> Iterator[dict[str, Any]]:
        url: Optional[str] = path
        page_params = params
        while url:
            data = self._get_json(url, params=page_params, context=context)
            for item in data.get("value", []) or []:
                if isinstance(item, dict):
                    yield item

            next_link = data.get(NEXT_LINK_KEY)
            url = next_link if isinstance(next_link, str) and next_link else None
            # nextLink already carries the original query.
            page_params = None

    def _get_json(
        self,
        path_or_url: str,
        *,
        params: Optional[dict[str, str]] = None,
        context: dict[str, Any],
    ) -> dict[str, Any]:
        def call() -> dict[str, Any]:
            resp = self._session.request("GET", self._url(path_or_url), params=params)
            _raise_for_status(resp)
            return _json_body(resp)

        return self._execute(call, retry=True, context=context)

    def _send(self, method: str, path: str, *, context: dict[str, Any]) -> None:
        def call() -> None:
            resp = self._session.request(method, self._url(path))
            _raise_for_status(resp)

        _LOGGER.debug("%s %s", method, path)
        self._execute(call, retry=False, context=context)

    def _execute(
        self,
        func: Callable[[], T],
        *,
        retry: bool,
        context: dict[str, Any],
    ) -> T:
        max_retries = self._retry_policy.max_retries if retry else 0
        delay = self._retry_policy.initial_delay_sec
        for attempt in range(max_retries + 1):
            try:
                return func()
            except Exception as exc:
                mapped = self._map_exception(exc)
                for key, value in context.items():
                    mapped.details.setdefault(key, value)
                if self._should_retry(mapped) and attempt < max_retries:
                    _LOGGER.debug(
                        "Retrying %s after %s (attempt %d)",
                        context.get("operation"),
                        mapped.__class__.__name__,
                        attempt + 1,
                    )
                    time.sleep(_backoff(mapped, delay))
                    delay *= 2
                    continue
                if mapped is exc:
                    raise
                raise mapped from exc

        raise ApiError("Unexpected retry loop termination", details=dict(context))

    def _should_retry(self, exc: Exception) -> bool:
        if isinstance(exc, RateLimitError):
            return True
        if isinstance(exc, NetworkError):
            return True
        if isinstance(exc, ApiError):
            status_code = getattr(exc, "details", {}).get("status_code")
            return isinstance(status_code, int) and 500 <= status_code <= 599
        return False

    def _map_exception(self, exc: Exception) -> DepSyncError:
        if isinstance(exc, DepSyncError):
            return exc

        if isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
            return NetworkError("Network error", cause=exc)

        if isinstance(exc, (OSError, TimeoutError)):
            return NetworkError("Network error", cause=exc)

        return ApiError("Graph API error", cause=exc)


def _require_id(value: object, field_name: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(f"{field_name} must be a non-empty string")


def _backoff(exc: DepSyncError, delay: float) -> float:
    """Throttled responses wait at least as long as Graph asks."""
    if isinstance(exc, RateLimitError) and exc.retry_after is not None:
        return max(delay, float(exc.retry_after))
    return delay


def _retry_after_seconds(headers: Any) -> Optional[int]:
    if not headers:
        return None
    value = headers.get("Retry-After")
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return None


def _raise_for_status(resp: Any) -> None:
    if resp.status_code < 400:
        return
    raise map_http_error(_http_response_to_info(resp))


def _json_body(resp: Any) -> dict[str, Any]:
    if resp.status_code == 204 or not resp.content:
        return {}
    data = resp.json()
    return data if isinstance(data, dict) else {}


def _http_response_to_info(resp: Any) -> HttpErrorInfo:
    status_code = getattr(resp, "status_code", None)
    reason = getattr(resp, "reason", None)

    message = None
    details: dict[str, Any] = {}

    try:
        payload = resp.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        err = payload.get("error") or {}
        if isinstance(err, dict):
            message = err.get("message") or None
            if isinstance(err.get("code"), str):
                reason = err["code"]
            inner = err.get("innerError") or {}
            if isinstance(inner, dict) and inner.get("request-id"):
                details["request_id"] = inner["request-id"]

    retry_after = _retry_after_seconds(getattr(resp, "headers", None))
    if retry_after is not None:
        details["retry_after"] = retry_after

    if not isinstance(status_code, int):
        status_code = 0

    return HttpErrorInfo(
        status_code=status_code,
        reason=reason if isinstance(reason, str) else None,
        message=message if isinstance(message, str) else None,
        details=details or None,
    )


def _token_dict_to_token(data: dict[str, Any]) -> EnrollmentToken:
    token_id = data.get("id")
    name = data.get("tokenName")
    apple_id = data.get("appleIdentifier")
    last_success = data.get("lastSuccessfulSyncDateTime")
    last_triggered = data.get("lastSyncTriggeredDateTime")

    count = data.get("syncedDeviceCount")
    synced = count if isinstance(count, int) else 0

    return EnrollmentToken(
        token_id=token_id if isinstance(token_id, str) else "",
        name=name if isinstance(name, str) else "",
        apple_identifier=apple_id if isinstance(apple_id, str) else None,
        last_successful_sync=last_success if isinstance(last_success, str) else None,
        last_sync_triggered=last_triggered if isinstance(last_triggered, str) else None,
        synced_device_count=synced,
    )


def _device_dict_to_record(data: dict[str, Any]) -> ManagedDeviceRecord:
    enrolled_at = None
    if isinstance(data.get("enrolledDateTime"), str):
        try:
            enrolled_at = parse_rfc3339(data["enrolledDateTime"])
        except ValueError:
            enrolled_at = None

    return ManagedDeviceRecord(
        device_id=_str(data.get("id")),
        serial_number=_str(data.get("serialNumber")),
        device_name=_str(data.get("deviceName")),
        operating_system=_str(data.get("operatingSystem")),
        os_version=_str(data.get("osVersion")),
        enrolled_at=enrolled_at,
    )


def _identity_dict_to_identity(data: dict[str, Any]) -> EnrolledDeviceIdentity:
    return EnrolledDeviceIdentity(
        identity_id=_str(data.get("id")),
        serial_number=_str(data.get("serialNumber")),
        platform=_str(data.get("platform")),
        description=_str(data.get("description")),
    )


def _str(value: Any) -> str:
    return value if isinstance(value, str) else ""
