"""Transport selection with sticky fallback.

Two states, ``BROADCAST`` and ``API``. The only transition is
``BROADCAST -> API`` after a failed scan while an OpenAPI token is
configured. It is never reversed for the life of the router: a successful
API refresh does not re-derive the state from the BLE setting.
"""

from __future__ import annotations

from pymeterplus.models.reading import Transport


class TransportRouter:
    def __init__(self, *, uses_broadcast_transport: bool, credential_configured: bool) -> None:
        self._credential_configured = credential_configured
        self._state = Transport.BROADCAST if uses_broadcast_transport else Transport.API
        self._forced_to_api = False

    @property
    def state(self) -> Transport:
        return self._state

    @property
    def forced_to_api(self) -> bool:
        """Whether the sticky fallback has been taken."""
        return self._forced_to_api

    @property
    def credential_configured(self) -> bool:
        return self._credential_configured

    def select(self) -> Transport:
        return self._state

    def record_scan_failure(self) -> bool:
        """Fall back to the API after a failed scan.

        Returns ``True`` when the router is now on the API transport, i.e.
        the caller should fetch over the API in the same cycle.
        """
        if not self._credential_configured:
            return False
        if self._state is Transport.BROADCAST:
            self._state = Transport.API
            self._forced_to_api = True
        return True
