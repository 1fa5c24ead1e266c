from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from starlette.requests import HTTPConnection
from starlette.responses import Response


class SlotAction(str, Enum):
    KEEP = "keep"
    SET = "set"
    CLEAR = "clear"


@dataclass(frozen=True)
class SlotDirective:
    action: SlotAction = SlotAction.KEEP
    value: str | None = None

    @classmethod
    def keep(cls) -> SlotDirective:
        return cls()

    @classmethod
    def set(cls, value: str) -> SlotDirective:
        return cls(SlotAction.SET, value)

    @classmethod
    def clear(cls) -> SlotDirective:
        return cls(SlotAction.CLEAR)


@dataclass(frozen=True)
class TransportValues:
    """Raw slot values read from a request. Missing or empty -> None."""

    session: str | None = None
    csrf: str | None = None
    refresh: str | None = None


@dataclass(frozen=True)
class TransportDirectives:
    """What to do with each slot on the response."""

    session: SlotDirective = field(default_factory=SlotDirective)
    csrf: SlotDirective = field(default_factory=SlotDirective)
    refresh: SlotDirective = field(default_factory=SlotDirective)

    def merge(self, other: TransportDirectives) -> TransportDirectives:
        """Slot-wise merge; any non-KEEP slot in ``other`` wins."""

        def pick(mine: SlotDirective, theirs: SlotDirective) -> SlotDirective:
            return mine if theirs.action is SlotAction.KEEP else theirs

        return TransportDirectives(
            session=pick(self.session, other.session),
            csrf=pick(self.csrf, other.csrf),
            refresh=pick(self.refresh, other.refresh),
        )

    @property
    def is_empty(self) -> bool:
        return all(d.action is SlotAction.KEEP for d in (self.session, self.csrf, self.refresh))

    @classmethod
    def clear_all(cls) -> TransportDirectives:
        return cls(SlotDirective.clear(), SlotDirective.clear(), SlotDirective.clear())


class SessionTransport(ABC):
    """Moves session / csrf / refresh values between the server and the client."""

    @abstractmethod
    def extract(self, request: HTTPConnection) -> TransportValues: ...

    def apply(self, response: Response, directives: TransportDirectives) -> Response:
        self._apply_slot(response, "session", directives.session)
        self._apply_slot(response, "csrf", directives.csrf)
        self._apply_slot(response, "refresh", directives.refresh)
        return response

    def _apply_slot(self, response: Response, slot: str, directive: SlotDirective) -> None:
        if directive.action is SlotAction.SET:
            self._set(response, slot, directive.value)
        elif directive.action is SlotAction.CLEAR:
            self._clear(response, slot)

    @abstractmethod
    def _set(self, response: Response, slot: str, value: str) -> None: ...

    @abstractmethod
    def _clear(self, response: Response, slot: str) -> None: ...


def _non_empty(value: str | None) -> str | None:
    return value or None
