"""
tests/test_approvals.py — Approval predicates, request ids, reconciliation.
"""

import sys
from dataclasses import replace
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from clinic_scheduler.approvals import (
    all_day_requests,
    approval_request_id,
    check_all_day_staffing_approval,
    check_lead_approval,
    check_sub_approval,
    create_approval_request,
    is_sub_approved,
    pending_only,
    reconcile_approvals,
)
from clinic_scheduler.models import (
    ApprovalStatus,
    ApprovalType,
    ApprovedSub,
    Client,
    Role,
    Staff,
)
from clinic_scheduler.schedule_config import Block

LEAD = Staff("l1", "Lee", role=Role.LEAD_RBT)
RBT = Staff("r1", "Rae", sub_eligible=True)


class TestChecks:

    def test_sub_only_when_client_disallows(self):
        assert not check_sub_approval(Client("c", "C"), RBT).needs_approval
        check = check_sub_approval(Client("c", "C", allow_sub=False), RBT)
        assert check.needs_approval
        assert check.approval_type == ApprovalType.SUB
        assert not check_sub_approval(Client("c", "C", allow_sub=False), None).needs_approval

    def test_lead_reserve_when_four_would_remain(self):
        check = check_lead_approval(Client("c", "C"), LEAD, 5)
        assert check.approval_type == ApprovalType.LEAD_RESERVE
        assert "only 4 leads" in check.reason

    def test_lead_staffing_when_plenty_remain(self):
        check = check_lead_approval(Client("c", "C"), LEAD, 6)
        assert check.needs_approval
        assert check.approval_type == ApprovalType.LEAD_STAFFING

    def test_non_lead_needs_no_lead_approval(self):
        assert not check_lead_approval(Client("c", "C"), RBT, 1).needs_approval

    def test_all_day_same_client(self):
        assert check_all_day_staffing_approval("s", "c", "c", "c").needs_approval
        assert not check_all_day_staffing_approval("s", "c", "c", "d").needs_approval
        assert not check_all_day_staffing_approval("s", "c", None, None).needs_approval

    def test_is_sub_approved_matches_exact_triple(self):
        approved = [ApprovedSub("c", Block.AM, "r1")]
        assert is_sub_approved("c", Block.AM, "r1", approved)
        assert not is_sub_approved("c", Block.PM, "r1", approved)
        assert not is_sub_approved("c", Block.AM, "r2", approved)


class TestRequests:

    def test_ids_are_stable(self):
        assert approval_request_id(ApprovalType.SUB, "c", Block.AM, "r1") == "sub-c-AM-r1"
        assert approval_request_id(ApprovalType.LEAD_RESERVE, "c", Block.PM, "l1") == "lead-c-PM-l1"
        assert approval_request_id(ApprovalType.ALL_DAY_STAFFING, "c", Block.AM, "s") == "all-day-c-s"

    def test_create_request(self):
        client = Client("c", "Cam", allow_sub=False)
        request = create_approval_request(check_sub_approval(client, RBT), client, Block.PM, RBT, "s9")
        assert request.id == "sub-c-PM-r1"
        assert request.status == ApprovalStatus.PENDING
        assert request.original_staff_id == "s9"
        assert request.proposed_staff_name == "Rae"

    def test_all_day_requests_skip_unknown(self):
        clients = {"c": Client("c", "Cam")}
        staff = {"r1": RBT}
        requests = all_day_requests(
            [("r1", "c", "c"), ("r1", "c", "d"), ("zz", "c", "c")], clients, staff
        )
        assert [r.id for r in requests] == ["all-day-c-r1"]
        assert requests[0].reason == "All-day staffing: Rae assigned to Cam for both AM and PM"


class TestReconcile:

    def _requests(self):
        client = Client("c", "Cam", allow_sub=False)
        check = check_sub_approval(client, RBT)
        am = create_approval_request(check, client, Block.AM, RBT)
        pm = create_approval_request(check, client, Block.PM, RBT)
        return am, pm

    def test_decided_status_carried_over(self):
        am, pm = self._requests()
        previous = [replace(am, status=ApprovalStatus.APPROVED), pm]
        merged = reconcile_approvals(previous, [am, pm])
        assert [r.status for r in merged] == [ApprovalStatus.APPROVED, ApprovalStatus.PENDING]
        assert [r.id for r in pending_only(merged)] == [pm.id]

    def test_vanished_requests_dropped(self):
        am, pm = self._requests()
        merged = reconcile_approvals([replace(pm, status=ApprovalStatus.DENIED)], [am])
        assert merged == [am]
