"""Endpoint paths and $select fields for Microsoft Graph (Intune DEP)."""

from __future__ import annotations

DEFAULT_BASE_URL: str = "https://graph.microsoft.com/beta"

TOKENS_PATH: str = "/deviceManagement/depOnboardingSettings"
TOKEN_PATH: str = TOKENS_PATH + "/{token_id}"
TOKEN_SYNC_PATH: str = TOKEN_PATH + "/syncWithAppleDeviceEnrollmentProgram"
IDENTITIES_PATH: str = TOKEN_PATH + "/importedAppleDeviceIdentities"
IDENTITY_PATH: str = IDENTITIES_PATH + "/{identity_id}"

MANAGED_DEVICES_PATH: str = "/deviceManagement/managedDevices"
MANAGED_DEVICE_PATH: str = MANAGED_DEVICES_PATH + "/{device_id}"

TOKEN_FIELDS: str = (
    "id,"
    "tokenName,"
    "appleIdentifier,"
    "lastSuccessfulSyncDateTime,"
    "lastSyncTriggeredDateTime,"
    "syncedDeviceCount"
)

MANAGED_DEVICE_FIELDS: str = (
    "id,"
    "serialNumber,"
    "deviceName,"
    "operatingSystem,"
    "osVersion,"
    "enrolledDateTime"
)

IDENTITY_FIELDS: str = "id,serialNumber,platform,description"

NEXT_LINK_KEY: str = "@odata.nextLink"
