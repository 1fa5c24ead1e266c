from sessionkit.config import SessionConfig
from sessionkit.transport.base_transport import (
    SessionTransport,
    SlotAction,
    SlotDirective,
    TransportDirectives,
    TransportValues,
)
from sessionkit.transport.cookie_transport import CookieTransport
from sessionkit.transport.header_transport import HeaderTransport

__all__ = [
    "SessionTransport",
    "CookieTransport",
    "HeaderTransport",
    "SlotAction",
    "SlotDirective",
    "TransportDirectives",
    "TransportValues",
    "build_transport",
]


def build_transport(config: SessionConfig) -> SessionTransport:
    """Pick the transport variant named by ``config.transport``."""
    if config.transport == "header":
        return HeaderTransport(config)
    return CookieTransport(config)
