"""
Site-level crawl lifecycle.
"""
from enum import Enum
from typing import Dict, FrozenSet


class SiteStatus(Enum):
    PENDING = "pending"        # Created by the caller, job not started
    CRAWLING = "crawling"      # Frontier loop running
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"    # Set by an external actor

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES: FrozenSet[SiteStatus] = frozenset({
    SiteStatus.COMPLETED, SiteStatus.FAILED, SiteStatus.CANCELLED,
})

# target -> statuses it may be entered from
TRANSITIONS: Dict[SiteStatus, FrozenSet[SiteStatus]] = {
    SiteStatus.CRAWLING: frozenset({SiteStatus.PENDING}),
    SiteStatus.COMPLETED: frozenset({SiteStatus.PENDING, SiteStatus.CRAWLING}),
    SiteStatus.FAILED: frozenset({SiteStatus.PENDING, SiteStatus.CRAWLING}),
    SiteStatus.CANCELLED: frozenset({SiteStatus.PENDING, SiteStatus.CRAWLING}),
    # A restart resets a finished site for a new run
    SiteStatus.PENDING: TERMINAL_STATES,
}


def allowed_sources(target: SiteStatus) -> FrozenSet[SiteStatus]:
    return TRANSITIONS[target]


def can_transition(current: SiteStatus, target: SiteStatus) -> bool:
    return current in TRANSITIONS[target]
