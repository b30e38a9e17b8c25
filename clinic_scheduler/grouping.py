"""
grouping.py — Lunch grouping rules

Two clients may share one covering staff member only if:
  - both allow grouping
  - any one-sided allowed-peer list names the other client
  - neither forbids the other for this lunch half (first: 11:30, second: 12:00)
  - the pair is not a disallowed combo on either side
Group size: above 2, every member and the candidate must allow groups of 3;
a group of 4 also needs the allow-groups-of-4 flag. Never above 4.
"""

from typing import Optional, Sequence

from clinic_scheduler.models import Client
from clinic_scheduler.schedule_config import LunchHalf

MAX_GROUP_SIZE = 4


def can_group_clients(a: Client, b: Client, half: Optional[LunchHalf] = None) -> bool:
    if not a.can_be_grouped or not b.can_be_grouped:
        return False

    if a.allowed_lunch_peer_ids and b.id not in a.allowed_lunch_peer_ids:
        return False
    if b.allowed_lunch_peer_ids and a.id not in b.allowed_lunch_peer_ids:
        return False

    if half == LunchHalf.FIRST:
        if b.id in a.no_first_lunch_peer_ids or a.id in b.no_first_lunch_peer_ids:
            return False
    elif half == LunchHalf.SECOND:
        if b.id in a.no_second_lunch_peer_ids or a.id in b.no_second_lunch_peer_ids:
            return False

    pair = frozenset((a.id, b.id))
    if pair in a.disallowed_group_combos or pair in b.disallowed_group_combos:
        return False
    return True


def can_add_to_group(
    group: Sequence[Client],
    candidate: Client,
    half: Optional[LunchHalf] = None,
) -> bool:
    """Would `candidate` legally join `group` (possibly empty) for this half?"""
    if not group:
        return True

    new_size = len(group) + 1
    if new_size > MAX_GROUP_SIZE:
        return False
    members = list(group) + [candidate]
    if new_size >= 3 and not all(c.allow_groups_of_3 for c in members):
        return False
    if new_size == 4 and not all(c.allow_groups_of_4 for c in members):
        return False

    return all(can_group_clients(existing, candidate, half) for existing in group)
