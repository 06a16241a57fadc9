"""In-process notifications fired after an obligation is written."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional

from bursar.models.obligation import Obligation, ObligationRef, ObligationStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ObligationChanged:
    ref: ObligationRef
    action: str  # created | paid | edited | deleted
    status: Optional[ObligationStatus] = None
    paid_amount: Optional[Decimal] = None
    version: Optional[int] = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def of(cls, obligation: Obligation, action: str) -> "ObligationChanged":
        return cls(
            ref=obligation.ref,
            action=action,
            status=obligation.status,
            paid_amount=obligation.paid_amount,
            version=obligation.version,
        )


Subscriber = Callable[[ObligationChanged], Awaitable[None]]


class ObligationEvents:
    """
    Publish/subscribe hub for obligation changes.

    Subscribers run in registration order after the write has committed. A
    failing subscriber is logged and skipped; it never fails the write.
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register a coroutine callback; returns a function that unsubscribes it."""
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    async def publish(self, event: ObligationChanged) -> None:
        for subscriber in list(self._subscribers):
            try:
                await subscriber(event)
            except Exception:
                logger.warning(
                    "Obligation subscriber %r failed for %s (%s)",
                    subscriber, event.ref, event.action, exc_info=True
                )


obligation_events = ObligationEvents()
