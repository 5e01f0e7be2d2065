"""OpenAPI status fetch."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from pymeterplus._constants import API_STATUS_MESSAGES
from pymeterplus._redact import redact_for_log
from pymeterplus._transport import Transport
from pymeterplus.exceptions import MeterApiError
from pymeterplus.models.status import DeviceStatusResponse, RawApiBody

_logger = logging.getLogger(__name__)


def status_endpoint(device_id: str) -> str:
    return f"/devices/{device_id}/status"


class ApiFetcher:
    """Issue one ``GET /devices/{deviceId}/status`` and decode its body.

    The caller is responsible for only constructing/invoking this when an
    OpenAPI token is configured.
    """

    def __init__(self, transport: Transport, *, logger: logging.Logger | logging.LoggerAdapter | None = None) -> None:
        self._transport = transport
        self._log = logger or _logger

    async def run(self, device_id: str) -> RawApiBody:
        """Fetch the device status.

        Raises
        ------
        MeterApiError
            On network failure, non-200 HTTP status, non-100 ``statusCode``
            or a malformed body.
        """
        endpoint = status_endpoint(device_id)
        payload = await self._transport.get_json(endpoint)
        self._log.debug("openAPIRefreshStatus: %s", redact_for_log(payload))

        try:
            response = DeviceStatusResponse.model_validate(payload)
        except ValidationError as exc:
            raise MeterApiError(f"Malformed status response from {endpoint}: {exc}", endpoint=endpoint) from exc

        if not response.is_success:
            detail = API_STATUS_MESSAGES.get(response.status_code, response.message or "Unknown error")
            raise MeterApiError(
                f"{endpoint} failed: statusCode={response.status_code} ({detail})",
                status_code=response.status_code,
                endpoint=endpoint,
            )
        if response.body is None:
            raise MeterApiError(f"Status response from {endpoint} has no body", endpoint=endpoint)
        return response.body
