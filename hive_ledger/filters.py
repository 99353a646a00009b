"""Filtering of normalized chain events before dispatch.

Tag matching belongs to the post feed itself; this filter only applies
account-level moderation on top of what the feeds delivered.
"""

from typing import Iterable, Optional, Set

from .config import Settings, settings as default_settings
from .events import ChainEvent, NewVote
from .logging_setup import get_logger

logger = get_logger(__name__)


class EventFilter:
    """Drops events authored or cast by muted accounts."""

    def __init__(
        self,
        muted_authors: Optional[Iterable[str]] = None,
        config: Settings = default_settings,
    ):
        self.muted_authors: Set[str] = set(muted_authors if muted_authors is not None else config.muted_authors)

        # Statistics
        self.total_events_processed = 0
        self.events_accepted = 0
        self.events_rejected = 0
        self.rejection_reasons = {
            'muted_author': 0,
        }

    def mute(self, account: str) -> None:
        self.muted_authors.add(account)
        logger.info("author_muted", account=account)

    def should_include(self, event: ChainEvent) -> bool:
        """Determine if an event should be dispatched."""
        self.total_events_processed += 1

        actor = event.voter if isinstance(event, NewVote) else event.author
        if actor in self.muted_authors or event.author in self.muted_authors:
            self._reject('muted_author')
            return False

        self.events_accepted += 1
        return True

    def _reject(self, reason: str) -> None:
        self.events_rejected += 1
        self.rejection_reasons[reason] += 1

    def get_stats(self) -> dict:
        acceptance_rate = (
            self.events_accepted / self.total_events_processed
            if self.total_events_processed > 0 else 0
        )

        return {
            'total_processed': self.total_events_processed,
            'accepted': self.events_accepted,
            'rejected': self.events_rejected,
            'acceptance_rate': acceptance_rate,
            'rejection_reasons': self.rejection_reasons.copy(),
            'muted_authors': len(self.muted_authors),
        }

