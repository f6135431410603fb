"""
Monitor events and the observer registry that fans them out.

Handlers are delivered one at a time, in subscription order, on the event
loop that publishes. A handler may be a plain function or a coroutine
function. A failing handler is logged and does not stop delivery to the rest.
"""

from __future__ import annotations

import enum
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

from forkoor_sentinel.analytics.risk_engine import RiskAssessment
from forkoor_sentinel.sentinel_logging import get_logger
from forkoor_sentinel.solana_listener.models import TokenLaunchEvent

logger = get_logger(__name__)


class MonitorEvent(str, enum.Enum):
    NEW_TOKEN = "new_token"
    TOKEN_ASSESSED = "token_assessed"
    FORK_OPPORTUNITY = "fork_opportunity"
    ERROR = "error"


@dataclass(frozen=True)
class ForkOpportunity:
    """A forkable assessment together with the launch event that triggered it."""

    assessment: RiskAssessment
    token: TokenLaunchEvent

    def to_dict(self) -> dict[str, Any]:
        return {"assessment": self.assessment.to_dict(), "token": self.token.to_dict()}


Handler = Callable[[Any], Union[None, Awaitable[None]]]


class EventBus:
    """Typed observer registry: subscribe/unsubscribe per MonitorEvent."""

    def __init__(self) -> None:
        self._handlers: dict[MonitorEvent, list[Handler]] = {event: [] for event in MonitorEvent}

    def subscribe(self, event: MonitorEvent, handler: Handler) -> Callable[[], None]:
        """Register handler; returns a callable that unsubscribes it."""
        self._handlers[MonitorEvent(event)].append(handler)
        return lambda: self.unsubscribe(event, handler)

    def unsubscribe(self, event: MonitorEvent, handler: Handler) -> bool:
        """Remove handler; False if it was not subscribed."""
        handlers = self._handlers[MonitorEvent(event)]
        try:
            handlers.remove(handler)
        except ValueError:
            return False
        return True

    def handler_count(self, event: MonitorEvent) -> int:
        return len(self._handlers[MonitorEvent(event)])

    async def publish(self, event: MonitorEvent, payload: Any) -> int:
        """Deliver payload to every handler of event; returns how many succeeded."""
        delivered = 0
        # Snapshot so handlers may (un)subscribe during delivery
        for handler in list(self._handlers[MonitorEvent(event)]):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.exception(
                    "event_handler_failed",
                    monitor_event=MonitorEvent(event).value,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(e),
                )
                continue
            delivered += 1
        return delivered
