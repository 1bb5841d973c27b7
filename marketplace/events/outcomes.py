"""
Outcome events emitted after every marketplace operation.

The notification collaborator decides how (and whether) to show them;
the core only publishes success or failure plus a reason code.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutcomeEvent:
    """
    Result of one operation.

    Attributes:
        name: Operation name (e.g., 'quotation.accept')
        success: Whether the operation succeeded
        reason: 'ok' or the error kind
        order_id: Order involved, if any
        quotation_id: Quotation involved, if any
        actor_id: Caller that triggered the operation
        timestamp: When the outcome was recorded
    """
    name: str
    success: bool
    reason: str
    order_id: Optional[str] = None
    quotation_id: Optional[str] = None
    actor_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)


class Notifier:
    """Port for the notification collaborator."""

    def publish(self, event: OutcomeEvent) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Default notifier: writes every outcome to the log."""

    def publish(self, event: OutcomeEvent) -> None:
        level = logging.INFO if event.success else logging.WARNING
        logger.log(
            level,
            "%s %s (%s) order=%s quotation=%s actor=%s",
            event.name,
            "succeeded" if event.success else "failed",
            event.reason,
            event.order_id,
            event.quotation_id,
            event.actor_id,
        )


class RecordingNotifier(Notifier):
    """Keeps published events in memory; used as a test double."""

    def __init__(self):
        self.events: List[OutcomeEvent] = []

    def publish(self, event: OutcomeEvent) -> None:
        self.events.append(event)

    def names(self) -> List[str]:
        return [event.name for event in self.events]

    def failures(self) -> List[OutcomeEvent]:
        return [event for event in self.events if not event.success]
