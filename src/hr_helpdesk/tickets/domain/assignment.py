"""
Assignment Selector
===================

Picks an agent from already-fetched candidates. The reads (active agents,
open-ticket counts) happen in the application layer; concurrent creations may
see the same counts and land on the same agent. That is accepted: the balance
is best-effort.
"""

from typing import Mapping, Optional, Sequence

from hr_helpdesk.tickets.domain.entities import DirectoryUser


def select_least_loaded(
    candidates: Sequence[DirectoryUser],
    workloads: Mapping[str, int]
) -> Optional[DirectoryUser]:
    """
    Least open tickets wins; ties go to the oldest account.

    Args:
        candidates: Active agents holding an eligible role
        workloads: Open-ticket count by agent id (missing means zero)
    """
    active = [c for c in candidates if c.is_active]
    if not active:
        return None
    return min(active, key=lambda c: (workloads.get(c.id, 0), c.created_at, c.id))


def select_earliest(candidates: Sequence[DirectoryUser]) -> Optional[DirectoryUser]:
    """Pure FIFO by account creation, used when escalating."""
    active = [c for c in candidates if c.is_active]
    if not active:
        return None
    return min(active, key=lambda c: (c.created_at, c.id))
