from __future__ import annotations

from starlette.requests import HTTPConnection
from starlette.responses import Response

from sessionkit.config import HeaderSettings, SessionConfig
from sessionkit.transport.base_transport import SessionTransport, TransportValues, _non_empty


class HeaderTransport(SessionTransport):
    """Custom header pairs. The client stores the values and echoes them on every request."""

    def __init__(self, config: SessionConfig):
        self._headers: dict[str, HeaderSettings] = {
            "session": config.session_header,
            "csrf": config.csrf_header,
            "refresh": config.refresh_header,
        }

    def extract(self, request: HTTPConnection) -> TransportValues:
        headers = request.headers
        return TransportValues(
            session=_non_empty(headers.get(self._headers["session"].get_from_client)),
            csrf=_non_empty(headers.get(self._headers["csrf"].get_from_client)),
            refresh=_non_empty(headers.get(self._headers["refresh"].get_from_client)),
        )

    def _set(self, response: Response, slot: str, value: str) -> None:
        response.headers[self._headers[slot].send_to_client] = value

    def _clear(self, response: Response, slot: str) -> None:
        # empty value tells the client to drop what it stored
        response.headers[self._headers[slot].send_to_client] = ""
