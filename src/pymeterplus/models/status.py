"""OpenAPI device status models."""

from __future__ import annotations

from pydantic import Field

from pymeterplus._constants import API_SUCCESS_CODE
from pymeterplus.models._base import MeterBaseModel


class RawApiBody(MeterBaseModel):
    """``body`` of a ``GET /devices/{deviceId}/status`` response.

    Battery is never reported over the OpenAPI, so there is no field for it.
    """

    device_id: str | None = Field(default=None, validation_alias="deviceId")
    device_type: str | None = Field(default=None, validation_alias="deviceType")
    temperature_celsius: float | None = Field(default=None, validation_alias="temperature")
    humidity_percent: int | None = Field(default=None, validation_alias="humidity")


class DeviceStatusResponse(MeterBaseModel):
    """Response envelope: ``{"statusCode": 100, "message": "success", "body": {...}}``."""

    status_code: int = Field(validation_alias="statusCode")
    message: str = ""
    body: RawApiBody | None = None

    @property
    def is_success(self) -> bool:
        return self.status_code == API_SUCCESS_CODE
