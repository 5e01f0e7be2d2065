"""HTTP transport for the SwitchBot OpenAPI."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import aiohttp

from pymeterplus._constants import USER_AGENT
from pymeterplus._redact import redact_for_log
from pymeterplus.config import PlatformOptions
from pymeterplus.exceptions import MeterApiError, MeterConfigError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by :class:`pymeterplus.api.ApiFetcher`.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`OpenApiTransport`) concrete.
    """

    async def get_json(self, endpoint: str) -> dict[str, Any]:
        ...


class OpenApiTransport:
    """Token-authenticated GET requests returning decoded JSON objects."""

    def __init__(
        self,
        options: PlatformOptions,
        http_session: aiohttp.ClientSession,
    ) -> None:
        if not options.credential_configured:
            raise MeterConfigError("OpenAPI transport requires an open_token")
        self._options = options
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=options.request_timeout)

    def _headers(self) -> dict[str, str]:
        assert self._options.open_token is not None  # noqa: S101
        return {
            "authorization": self._options.open_token.strip(),
            "content-type": "application/json; charset=utf8",
            "user-agent": USER_AGENT,
        }

    async def get_json(self, endpoint: str) -> dict[str, Any]:
        url = f"{self._options.api_base_url}{endpoint}"
        headers = self._headers()
        _logger.debug("GET %s headers=%s", url, redact_for_log(headers))

        try:
            async with self._http.get(url, headers=headers, timeout=self._timeout) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise MeterApiError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except MeterApiError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise MeterApiError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        try:
            body: Any = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MeterApiError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                endpoint=endpoint,
            ) from exc

        if not isinstance(body, dict):
            raise MeterApiError(f"Response from {endpoint} is not a JSON object", endpoint=endpoint)
        return body
