from __future__ import annotations

from starlette.requests import HTTPConnection
from starlette.responses import Response

from sessionkit.config import CookieSettings, SessionConfig
from sessionkit.transport.base_transport import SessionTransport, TransportValues, _non_empty


class CookieTransport(SessionTransport):
    """
    Three independent cookies.
    - session: signed session token, http-only
    - csrf: double-submit token, readable by client script (never http-only)
    - refresh: selector:validator, http-only
    Session / refresh cookies without an explicit max_age follow the token TTL.
    """

    def __init__(self, config: SessionConfig):
        self._cookies: dict[str, CookieSettings] = {
            "session": config.session_cookie,
            "csrf": config.csrf_cookie,
            "refresh": config.refresh_cookie,
        }
        self._default_max_age: dict[str, int | None] = {
            "session": config.session_max_age,
            "csrf": None,
            "refresh": config.refresh_max_age,
        }

    def cookie_name(self, slot: str) -> str:
        return self._cookies[slot].name

    def extract(self, request: HTTPConnection) -> TransportValues:
        cookies = request.cookies
        return TransportValues(
            session=_non_empty(cookies.get(self.cookie_name("session"))),
            csrf=_non_empty(cookies.get(self.cookie_name("csrf"))),
            refresh=_non_empty(cookies.get(self.cookie_name("refresh"))),
        )

    def _set(self, response: Response, slot: str, value: str) -> None:
        cookie = self._cookies[slot]
        max_age = cookie.max_age if cookie.max_age is not None else self._default_max_age[slot]
        response.set_cookie(
            key=cookie.name,
            value=value,
            max_age=max_age,
            path=cookie.path,
            domain=cookie.domain,
            secure=cookie.secure,
            httponly=cookie.http_only,
            samesite=cookie.same_site,
        )

    def _clear(self, response: Response, slot: str) -> None:
        cookie = self._cookies[slot]
        response.delete_cookie(
            key=cookie.name,
            path=cookie.path,
            domain=cookie.domain,
            secure=cookie.secure,
            httponly=cookie.http_only,
            samesite=cookie.same_site,
        )
