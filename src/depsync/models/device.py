"""Data models for device records in both registries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .token import EnrollmentToken


@dataclass(slots=True, frozen=True)
class ManagedDeviceRecord:
    """A device registered in Intune device management."""

    device_id: str
    serial_number: str
    device_name: str = ""
    operating_system: str = ""
    os_version: str = ""
    enrolled_at: Optional[datetime] = None


@dataclass(slots=True, frozen=True)
class EnrolledDeviceIdentity:
    """A device entry in one enrollment token's roster."""

    identity_id: str
    serial_number: str
    platform: str = ""
    description: str = ""


@dataclass(slots=True, frozen=True)
class RemovalTarget:
    """
    What a removal run will act on, resolved once from the serial number.

    Either side may be missing. token and identity are set together.
    """

    serial_number: str
    managed_device: Optional[ManagedDeviceRecord] = None
    token: Optional[EnrollmentToken] = None
    identity: Optional[EnrolledDeviceIdentity] = None

    def __post_init__(self) -> None:
        if (self.token is None) != (self.identity is None):
            raise ValueError("token and identity must be resolved together")

    @property
    def has_managed_device(self) -> bool:
        return self.managed_device is not None

    @property
    def has_enrolled_identity(self) -> bool:
        return self.identity is not None

    @property
    def is_empty(self) -> bool:
        return not self.has_managed_device and not self.has_enrolled_identity
