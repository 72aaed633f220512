"""
hr_services.api -- Request parsing and error mapping for HTTP adapters.

Responsibility:
    Turn raw request bodies into typed arguments for ``ApprovalWorkflow``
    and turn its results and exceptions into ``(status, payload)`` pairs.
    Framework-agnostic: a web layer only forwards the parsed JSON body and
    the authenticated actor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any
from uuid import UUID

from hr_kernel.domain.approval import (
    ApprovalStep,
    DaySwapPair,
    DecisionResponse,
    DesiredStep,
    ReturnShiftRequest,
    StepDecision,
    Submission,
)
from hr_kernel.exceptions import (
    ApprovalEngineError,
    AuthenticationError,
    ChainValidationError,
    ConflictError,
    ForbiddenError,
    InvalidDecisionError,
    InvalidRequestError,
    NotAuthenticatedError,
    NotFoundError,
    PersistenceError,
    UnresolvedApproversError,
    ValidationError,
)
from hr_kernel.logging_config import get_logger
from hr_services.approval_workflow import ApprovalWorkflow

logger = get_logger("services.api")

# Checked in order; first match wins.
_STATUS_BY_ERROR: tuple[tuple[type[ApprovalEngineError], int], ...] = (
    (ValidationError, 400),
    (AuthenticationError, 401),
    (ForbiddenError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (PersistenceError, 500),
)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as established by the identity layer."""

    user_id: UUID
    role: str | None = None


@dataclass(frozen=True)
class DecisionRequest:
    decision: StepDecision
    note: str | None = None
    return_shift: ReturnShiftRequest | None = None


@dataclass(frozen=True)
class CreateRequest:
    kind: str
    approvals: list[DesiredStep]
    leave_start_date: date | None = None
    leave_end_date: date | None = None
    tagged_user_ids: list[Any] = field(default_factory=list)
    swap_pairs: list[DaySwapPair] = field(default_factory=list)


# =============================================================================
# Parsing
# =============================================================================


def parse_uuid(value: Any, field_name: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value).strip())
    except ValueError:
        raise InvalidRequestError(field_name, f"{value!r} is not a valid identifier")


def _parse_note(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_date(value: Any, field_name: str) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise InvalidRequestError(field_name, f"{value!r} is not an ISO date")


def _parse_return_shift(value: Any) -> ReturnShiftRequest | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise InvalidRequestError("return_shift", "must be an object")

    shift_date = _parse_date(value.get("date"), "return_shift.date")

    pattern = value.get("pattern_ref")
    pattern_ref = str(pattern).strip() if pattern not in (None, "") else None
    return ReturnShiftRequest(date=shift_date, pattern_ref=pattern_ref)


def parse_decision_request(body: Any) -> DecisionRequest:
    """Parse ``{decision, note?, return_shift?}``.

    Raises:
        InvalidRequestError: body is not an object or a field is malformed.
        InvalidDecisionError: decision is not approved/rejected.
    """
    if not isinstance(body, dict):
        raise InvalidRequestError("body", "must be a JSON object")

    decision = StepDecision.parse_final(body.get("decision"))
    if decision is None:
        raise InvalidDecisionError(body.get("decision"))

    return DecisionRequest(
        decision=decision,
        note=_parse_note(body.get("note")),
        return_shift=_parse_return_shift(body.get("return_shift")),
    )


def _parse_level(value: Any) -> Any:
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return value


def parse_chain_request(items: Any) -> list[DesiredStep]:
    """Parse a list of ``{id?, level, approver_user_id?, approver_role?}``.

    Only the shape is checked here; chain rules are enforced by the
    reconciliation service so that all problems are reported together.
    """
    if not isinstance(items, list):
        raise InvalidRequestError("approvals", "must be a list")

    desired: list[DesiredStep] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise InvalidRequestError(f"approvals[{index}]", "must be an object")
        desired.append(
            DesiredStep(
                level=_parse_level(item.get("level")),
                approver_user_id=item.get("approver_user_id"),
                approver_role=item.get("approver_role"),
                step_id=item.get("id", item.get("step_id")),
            )
        )
    return desired


def parse_tagged_request(value: Any) -> list[Any] | None:
    """Tagged delegate ids; None when the field is absent."""
    if value is None:
        return None
    if not isinstance(value, list):
        raise InvalidRequestError("tagged_user_ids", "must be a list")
    return value


def parse_swap_pairs(value: Any) -> list[DaySwapPair]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise InvalidRequestError("swap_pairs", "must be a list")

    pairs: list[DaySwapPair] = []
    for index, item in enumerate(value):
        prefix = f"swap_pairs[{index}]"
        if not isinstance(item, dict):
            raise InvalidRequestError(prefix, "must be an object")
        off_date = _parse_date(item.get("off_date"), f"{prefix}.off_date")
        work_date = _parse_date(item.get("work_date"), f"{prefix}.work_date")
        if off_date is None or work_date is None:
            raise InvalidRequestError(prefix, "off_date and work_date are required")
        pairs.append(DaySwapPair(off_date=off_date, work_date=work_date))
    return pairs


def parse_create_request(body: Any) -> CreateRequest:
    """Parse ``{kind, approvals, leave_start_date?, leave_end_date?,
    tagged_user_ids?, swap_pairs?}``."""
    if not isinstance(body, dict):
        raise InvalidRequestError("body", "must be a JSON object")

    kind = body.get("kind")
    if not isinstance(kind, str) or not kind.strip():
        raise InvalidRequestError("kind", "is required")

    return CreateRequest(
        kind=kind.strip().lower(),
        approvals=parse_chain_request(body.get("approvals")),
        leave_start_date=_parse_date(body.get("leave_start_date"), "leave_start_date"),
        leave_end_date=_parse_date(body.get("leave_end_date"), "leave_end_date"),
        tagged_user_ids=parse_tagged_request(body.get("tagged_user_ids")) or [],
        swap_pairs=parse_swap_pairs(body.get("swap_pairs")),
    )


# =============================================================================
# Serialization
# =============================================================================


def serialize_step(step: ApprovalStep) -> dict[str, Any]:
    return {
        "id": str(step.step_id),
        "submission_id": str(step.submission_id),
        "level": step.level,
        "approver_user_id": str(step.approver_user_id) if step.approver_user_id else None,
        "approver_role": step.approver_role.value if step.approver_role else None,
        "decision": step.decision.value,
        "decided_at": step.decided_at.isoformat() if step.decided_at else None,
        "decided_by_id": str(step.decided_by_id) if step.decided_by_id else None,
        "note": step.note,
    }


def serialize_submission(submission: Submission) -> dict[str, Any]:
    return {
        "id": str(submission.submission_id),
        "requester_id": str(submission.requester_id),
        "kind": submission.kind.value,
        "status": submission.status.value,
        "current_approved_level": submission.current_approved_level,
        "leave_start_date": (
            submission.leave_start_date.isoformat() if submission.leave_start_date else None
        ),
        "leave_end_date": (
            submission.leave_end_date.isoformat() if submission.leave_end_date else None
        ),
        "approvals": [serialize_step(s) for s in submission.steps],
        "tagged_user_ids": [str(u) for u in submission.tagged_user_ids],
        "swap_pairs": [
            {"off_date": p.off_date.isoformat(), "work_date": p.work_date.isoformat()}
            for p in submission.swap_pairs
        ],
    }


def serialize_decision(response: DecisionResponse) -> dict[str, Any]:
    adjustment = response.schedule_adjustment
    sync = response.shift_sync
    return {
        "step": serialize_step(response.step),
        "submission": serialize_submission(response.submission),
        "schedule_adjustment": (
            {
                "action": adjustment.action,
                "shift_id": str(adjustment.shift_id),
                "date": adjustment.shift_date.isoformat(),
                "pattern_ref": adjustment.pattern_ref,
            }
            if adjustment is not None
            else None
        ),
        "shift_sync": (
            {
                "effect": sync.effect,
                "created": sync.created,
                "updated": sync.updated,
                "dates": [d.isoformat() for d in sync.affected_dates],
            }
            if sync is not None
            else None
        ),
        "warnings": [
            {"effect": w.effect, "code": w.code, "message": w.message}
            for w in response.warnings
        ],
    }


# =============================================================================
# Errors
# =============================================================================


def error_status(exc: ApprovalEngineError) -> int:
    """HTTP status code for an engine exception."""
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def error_body(exc: ApprovalEngineError) -> dict[str, Any]:
    body: dict[str, Any] = {"code": exc.code, "message": str(exc)}
    if isinstance(exc, ChainValidationError):
        body["errors"] = list(exc.errors)
    elif isinstance(exc, UnresolvedApproversError):
        body["user_ids"] = list(exc.user_ids)
        body["tagged_user_ids"] = list(exc.tagged_user_ids)
    return body


# =============================================================================
# Handlers
# =============================================================================


def handle_decision(
    workflow: ApprovalWorkflow,
    actor: Actor | None,
    step_id: Any,
    body: Any,
) -> tuple[int, dict[str, Any]]:
    """PATCH /approvals/{step_id}: record a decision."""
    try:
        if actor is None:
            raise NotAuthenticatedError()
        request = parse_decision_request(body)
        response = workflow.decide(
            step_id=parse_uuid(step_id, "step_id"),
            actor_id=actor.user_id,
            actor_role=actor.role,
            decision=request.decision,
            note=request.note,
            return_shift=request.return_shift,
        )
    except ApprovalEngineError as exc:
        status = error_status(exc)
        log = logger.error if status >= 500 else logger.info
        log("approval_request_rejected", extra={"status": status, "code": exc.code})
        return status, error_body(exc)
    return 200, serialize_decision(response)


def handle_create(
    workflow: ApprovalWorkflow,
    actor: Actor | None,
    body: Any,
) -> tuple[int, dict[str, Any]]:
    """POST /submissions: create a submission for the actor."""
    try:
        if actor is None:
            raise NotAuthenticatedError()
        request = parse_create_request(body)
        submission = workflow.create_submission(
            request.kind,
            actor.user_id,
            request.approvals,
            leave_start_date=request.leave_start_date,
            leave_end_date=request.leave_end_date,
            tagged_user_ids=request.tagged_user_ids,
            swap_pairs=request.swap_pairs,
        )
    except ApprovalEngineError as exc:
        status = error_status(exc)
        log = logger.error if status >= 500 else logger.info
        log("approval_request_rejected", extra={"status": status, "code": exc.code})
        return status, error_body(exc)
    return 201, serialize_submission(submission)


def handle_reconcile(
    workflow: ApprovalWorkflow,
    actor: Actor | None,
    submission_id: Any,
    body: Any,
) -> tuple[int, dict[str, Any]]:
    """PUT /submissions/{id}/approvals: replace the approval chain.

    ``tagged_user_ids``, when present, replaces the tagged delegates in
    the same transaction.
    """
    try:
        if actor is None:
            raise NotAuthenticatedError()
        if not isinstance(body, dict):
            raise InvalidRequestError("body", "must be a JSON object")
        desired = parse_chain_request(body.get("approvals"))
        tagged = parse_tagged_request(body.get("tagged_user_ids"))
        chain = workflow.reconcile_chain(
            parse_uuid(submission_id, "submission_id"),
            desired,
            actor.user_id,
            tagged_user_ids=tagged,
        )
    except ApprovalEngineError as exc:
        status = error_status(exc)
        log = logger.error if status >= 500 else logger.info
        log("approval_request_rejected", extra={"status": status, "code": exc.code})
        return status, error_body(exc)
    return 200, {"approvals": [serialize_step(s) for s in chain]}
