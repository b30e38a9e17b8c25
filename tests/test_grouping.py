"""
tests/test_grouping.py — Lunch grouping rules and staff predicates.
"""

import sys
from datetime import date
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from clinic_scheduler.grouping import can_add_to_group, can_group_clients
from clinic_scheduler.models import Client, DaySchedule, Role, Staff
from clinic_scheduler.predicates import (
    PRIORITY_FLOAT,
    PRIORITY_FOCUS,
    PRIORITY_LEAD,
    PRIORITY_NONE,
    PRIORITY_SUB,
    PRIORITY_TRAINED,
    can_cover_lunch,
    client_needs_lunch_coverage,
    client_pm_start,
    client_staff_priority,
    eligible_staff,
    has_bcba_prep,
    is_new_hire_protected,
)
from clinic_scheduler.schedule_config import Block, LunchHalf


def groupable(cid, **kw):
    return Client(cid, cid.upper(), can_be_grouped=True, **kw)


# ---------------------------------------------------------------------------
# Pairs
# ---------------------------------------------------------------------------

class TestPairs:

    def test_both_must_allow_grouping(self):
        assert can_group_clients(groupable("a"), groupable("b"))
        assert not can_group_clients(groupable("a"), Client("b", "B"))

    def test_allowed_peer_list_is_one_sided(self):
        a = groupable("a", allowed_lunch_peer_ids=frozenset({"c"}))
        assert not can_group_clients(a, groupable("b"))
        assert not can_group_clients(groupable("b"), a)
        assert can_group_clients(a, groupable("c"))

    def test_no_pairing_is_per_half(self):
        a = groupable("a", no_first_lunch_peer_ids=frozenset({"b"}))
        b = groupable("b")
        assert not can_group_clients(a, b, LunchHalf.FIRST)
        assert not can_group_clients(b, a, LunchHalf.FIRST)
        assert can_group_clients(a, b, LunchHalf.SECOND)

    def test_disallowed_combo(self):
        a = groupable("a", disallowed_group_combos=frozenset({frozenset({"a", "b"})}))
        assert not can_group_clients(a, groupable("b"))
        assert can_group_clients(a, groupable("c"))


# ---------------------------------------------------------------------------
# Group size
# ---------------------------------------------------------------------------

class TestGroupSize:

    def test_empty_group_accepts_anyone(self):
        assert can_add_to_group([], Client("x", "X"))

    def test_third_member_needs_everyone_to_allow_three(self):
        a = groupable("a", allow_groups_of_3=True)
        b = groupable("b", allow_groups_of_3=True)
        c = groupable("c", allow_groups_of_3=True)
        assert can_add_to_group([a, b], c)
        assert not can_add_to_group([a, groupable("b")], c)
        assert not can_add_to_group([a, b], groupable("c"))

    def test_fourth_member_needs_groups_of_four(self):
        three = [groupable(x, allow_groups_of_3=True, allow_groups_of_4=True) for x in "abc"]
        d = groupable("d", allow_groups_of_3=True, allow_groups_of_4=True)
        assert can_add_to_group(three, d)
        assert not can_add_to_group(three, groupable("d", allow_groups_of_3=True))

    def test_never_above_four(self):
        four = [groupable(x, allow_groups_of_3=True, allow_groups_of_4=True) for x in "abcd"]
        assert not can_add_to_group(four, groupable("e", allow_groups_of_3=True, allow_groups_of_4=True))


# ---------------------------------------------------------------------------
# Staff predicates
# ---------------------------------------------------------------------------

class TestStaffPredicates:

    def test_priority_tiers(self):
        client = Client(
            "c", "C",
            focus_staff_ids=frozenset({"f"}),
            trained_staff_ids=frozenset({"t", "x"}),
            excluded_staff_ids=frozenset({"x"}),
            float_rbts_allowed=True, allowed_float_rbt_ids=frozenset({"fl"}),
            lead_rbts_allowed=True, allowed_lead_rbt_ids=frozenset({"ld"}),
        )
        assert client_staff_priority(Staff("f", "F"), client) == PRIORITY_FOCUS
        assert client_staff_priority(Staff("t", "T"), client) == PRIORITY_TRAINED
        assert client_staff_priority(Staff("fl", "FL", role=Role.FLOAT), client) == PRIORITY_FLOAT
        assert client_staff_priority(Staff("ld", "LD", role=Role.LEAD_RBT), client) == PRIORITY_LEAD
        assert client_staff_priority(Staff("s", "S", sub_eligible=True), client) == PRIORITY_SUB
        assert client_staff_priority(Staff("x", "X", sub_eligible=True), client) == PRIORITY_NONE
        assert client_staff_priority(Staff("o", "O"), client) == PRIORITY_NONE

    def test_lunch_cover_allow_list_and_exclusions(self):
        client = Client(
            "c", "C",
            lunch_coverage_staff_ids=frozenset({"a", "b"}),
            lunch_coverage_excluded_staff_ids=frozenset({"b"}),
        )
        assert can_cover_lunch("a", client)
        assert not can_cover_lunch("b", client)
        assert not can_cover_lunch("z", client)
        assert can_cover_lunch("z", Client("d", "D"))

    def test_eligible_staff_skips_inactive_and_bcba(self):
        staff = [
            Staff("2", "Zed"), Staff("1", "Amy"),
            Staff("3", "Off", active=False), Staff("4", "Doc", role=Role.BCBA),
        ]
        assert [s.id for s in eligible_staff(staff)] == ["1", "2"]

    def test_new_hire_window(self):
        hire = date(2026, 3, 1)
        assert is_new_hire_protected(Staff("n", "N", hire_date=hire), date(2026, 3, 30))
        assert not is_new_hire_protected(Staff("n", "N", hire_date=hire), date(2026, 3, 31))
        assert not is_new_hire_protected(
            Staff("n", "N", hire_date=hire, new_hire_override=True), date(2026, 3, 2)
        )

    def test_bcba_prep_needs_senior_lead(self):
        lead = Staff("l", "L", role=Role.LEAD_RBT, lead_level=3, bcba_prep_enabled=True,
                     bcba_prep_pm_days=frozenset({"mon"}))
        assert has_bcba_prep(lead, "mon", Block.PM)
        assert not has_bcba_prep(lead, "mon", Block.AM)
        junior = Staff("j", "J", role=Role.LEAD_RBT, lead_level=2, bcba_prep_enabled=True,
                       bcba_prep_pm_days=frozenset({"mon"}))
        assert not has_bcba_prep(junior, "mon", Block.PM)


class TestClientSessions:

    def test_morning_through_lunch_needs_coverage(self):
        client = Client("c", "C", schedule={"mon": DaySchedule(start=510, end=960)})
        assert client_needs_lunch_coverage(client, "mon")

    def test_morning_ending_early_needs_none(self):
        client = Client("c", "C", schedule={"mon": DaySchedule(am_start=510, am_end=660)})
        assert not client_needs_lunch_coverage(client, "mon")

    def test_unscheduled_or_disabled_day_needs_none(self):
        client = Client("c", "C", schedule={"mon": DaySchedule(enabled=False, start=510, end=960)})
        assert not client_needs_lunch_coverage(client, "mon")
        assert not client_needs_lunch_coverage(client, "tue")

    def test_pm_start(self):
        legs = Client("c", "C", schedule={"mon": DaySchedule(am_start=510, am_end=690, pm_start=780, pm_end=960)})
        afternoon = Client("d", "D", schedule={"mon": DaySchedule(start=780, end=960)})
        full_day = Client("e", "E", schedule={"mon": DaySchedule(start=510, end=960)})
        assert client_pm_start(legs, "mon") == 780
        assert client_pm_start(afternoon, "mon") == 780
        assert client_pm_start(full_day, "mon") is None
