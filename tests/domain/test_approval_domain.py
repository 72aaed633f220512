"""Tests for approval domain types: state machines, parsing, DTO properties."""

from uuid import uuid4

import pytest

from hr_kernel.domain.approval import (
    STEP_TRANSITIONS,
    SUBMISSION_TRANSITIONS,
    TERMINAL_SUBMISSION_STATUSES,
    ApprovalStep,
    ApproverRole,
    ChainDiff,
    DecisionEvent,
    DecisionOutcome,
    DesiredStep,
    StepDecision,
    Submission,
    SubmissionKind,
    SubmissionStatus,
)
from hr_kernel.domain.clock import DeterministicClock


class TestStateMachines:
    def test_step_pending_moves_to_final_decisions_only(self):
        assert STEP_TRANSITIONS[StepDecision.PENDING] == {
            StepDecision.APPROVED, StepDecision.REJECTED,
        }

    @pytest.mark.parametrize("final", [StepDecision.APPROVED, StepDecision.REJECTED])
    def test_decided_step_is_terminal(self, final):
        assert STEP_TRANSITIONS[final] == frozenset()

    def test_submission_terminal_states_have_no_exits(self):
        for status in TERMINAL_SUBMISSION_STATUSES:
            assert SUBMISSION_TRANSITIONS[status] == frozenset()
        assert SubmissionStatus.PENDING not in TERMINAL_SUBMISSION_STATUSES


class TestParsing:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("approved", StepDecision.APPROVED),
            ("  REJECTED ", StepDecision.REJECTED),
            ("Approved", StepDecision.APPROVED),
            (StepDecision.REJECTED, StepDecision.REJECTED),
        ],
    )
    def test_final_decisions(self, raw, expected):
        assert StepDecision.parse_final(raw) is expected

    @pytest.mark.parametrize("raw", ["pending", StepDecision.PENDING, "ok", "", None, 1])
    def test_non_final_values(self, raw):
        assert StepDecision.parse_final(raw) is None

    def test_role_parse(self):
        assert ApproverRole.parse("superadmin") is ApproverRole.SUPERADMIN
        assert ApproverRole.parse(ApproverRole.HR) is ApproverRole.HR
        assert ApproverRole.parse("boss") is None


class TestDtoProperties:
    def _outcome(self, previous, current):
        submission_id = uuid4()
        step = ApprovalStep(
            step_id=uuid4(), submission_id=submission_id, level=1,
            approver_role=ApproverRole.HR, decision=StepDecision.APPROVED,
        )
        submission = Submission(
            submission_id=submission_id, requester_id=uuid4(),
            kind=SubmissionKind.LEAVE, status=current, steps=(step,),
        )
        event = DecisionEvent(
            submission_id=submission_id, requester_id=submission.requester_id,
            kind=SubmissionKind.LEAVE, step_id=step.step_id,
            decision=StepDecision.APPROVED, level=1, note=None,
            submission_status=current,
        )
        return DecisionOutcome(step, submission, previous, event)

    def test_reached_terminal(self):
        assert self._outcome(SubmissionStatus.PENDING, SubmissionStatus.APPROVED).reached_terminal
        pending = self._outcome(SubmissionStatus.PENDING, SubmissionStatus.PENDING)
        assert not pending.reached_terminal

    def test_chain_diff_is_empty_ignores_unchanged(self):
        assert ChainDiff(unchanged=(uuid4(),)).is_empty
        assert not ChainDiff(creates=(DesiredStep(level=1, approver_role="HR"),)).is_empty

    def test_step_is_decided(self):
        step = ApprovalStep(step_id=uuid4(), submission_id=uuid4(), level=1)
        assert not step.is_decided


class TestDeterministicClock:
    def test_fixed_until_advanced(self):
        clock = DeterministicClock()
        first = clock.now()
        assert clock.now() == first
        assert (clock.tick() - first).total_seconds() == 1
        clock.advance(59)
        assert (clock.now() - first).total_seconds() == 60
