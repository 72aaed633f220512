"""
hr_engines.approval -- Pure approval chain engine.

Responsibility:
    Validate desired approval chains, diff them against the persisted
    chain, decide whether an actor may act on a step, and derive the
    submission status from the set of step decisions.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import hr_kernel/domain/ types.

Invariants enforced:
    - Chain edits never carry a decision over to a changed step: every
      matched step whose level or approver changed is emitted as a
      ``StepUpdate``, which the persistence layer applies as a reset to
      pending.  Identical steps are reported as unchanged.
    - One canonical role comparison (``role_matches``) shared by the
      decision authorization check and the approver inbox query.
    - Aggregation is a function of the live steps only; the same set of
      decisions always yields the same ``AggregateStatus``.
    - Purity: no clock access, no I/O, no database.

Failure modes:
    - ``normalize_desired_chain`` never raises; it returns every structural
      problem it finds so that callers can report them together.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import date, timedelta
from typing import Any
from uuid import UUID

from hr_kernel.domain.approval import (
    AggregateStatus,
    AggregationPolicy,
    ApprovalStep,
    ApproverRole,
    ChainDiff,
    DaySwapPair,
    DesiredStep,
    StepDecision,
    StepUpdate,
    SubmissionStatus,
)

# =============================================================================
# Roles and authorization
# =============================================================================


def parse_role(value: Any) -> ApproverRole | None:
    """Parse a role string case-insensitively.  Unknown roles yield None."""
    return ApproverRole.parse(value)


def role_matches(actor_role: Any, step_role: Any) -> bool:
    """True when both values name the same ``ApproverRole``.

    Either side may be a raw string or an ``ApproverRole``.  A missing or
    unknown role never matches anything.
    """
    actor = parse_role(actor_role)
    if actor is None:
        return False
    return actor == parse_role(step_role)


def is_authorized_approver(
    step: ApprovalStep,
    actor_id: UUID,
    actor_role: Any = None,
) -> bool:
    """Actor is the step's approver user, or holds the step's approver role."""
    if step.approver_user_id is not None and step.approver_user_id == actor_id:
        return True
    if step.approver_role is not None:
        return role_matches(actor_role, step.approver_role)
    return False


# =============================================================================
# Chain validation
# =============================================================================


def _as_uuid(value: Any) -> UUID | None:
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value.strip())
        except ValueError:
            return None
    return None


def normalize_desired_chain(
    desired: Sequence[DesiredStep],
    existing_step_ids: Iterable[UUID] = (),
) -> tuple[tuple[DesiredStep, ...], list[str]]:
    """Normalize raw desired steps and collect every structural problem.

    Normalization parses roles to ``ApproverRole`` and identifiers to
    ``UUID``.  Checks performed:

    * level is an integer >= 1 and unique within the chain;
    * exactly one of approver_user_id / approver_role is set;
    * approver_role belongs to the closed role set;
    * step_id values are unique and name existing live steps.

    Returns:
        ``(normalized_steps, errors)``.  ``normalized_steps`` is only
        meaningful when ``errors`` is empty.
    """
    existing = set(existing_step_ids)
    errors: list[str] = []
    normalized: list[DesiredStep] = []

    valid_levels: list[int] = []
    seen_ids: list[UUID] = []

    for index, item in enumerate(desired):
        prefix = f"step[{index}]"

        level = item.level
        level_ok = (
            isinstance(level, int)
            and not isinstance(level, bool)
            and level >= 1
        )
        if level_ok:
            valid_levels.append(level)
        else:
            errors.append(f"{prefix}: level must be an integer >= 1, got {level!r}")

        user_raw = item.approver_user_id
        role_raw = item.approver_role
        has_user = user_raw is not None and user_raw != ""
        has_role = role_raw is not None and role_raw != ""

        user_id: UUID | None = None
        role: ApproverRole | None = None
        if has_user == has_role:
            errors.append(
                f"{prefix}: exactly one of approver_user_id or approver_role "
                "is required"
            )
        elif has_user:
            user_id = _as_uuid(user_raw)
            if user_id is None:
                errors.append(
                    f"{prefix}: approver_user_id {user_raw!r} is not a valid "
                    "identifier"
                )
        else:
            role = parse_role(role_raw)
            if role is None:
                errors.append(f"{prefix}: unknown approver role {role_raw!r}")

        step_id: UUID | None = None
        if item.step_id is not None and item.step_id != "":
            step_id = _as_uuid(item.step_id)
            if step_id is None or step_id not in existing:
                errors.append(
                    f"{prefix}: step {item.step_id!s} does not belong to this "
                    "submission"
                )
            else:
                seen_ids.append(step_id)

        normalized.append(
            DesiredStep(
                level=level,
                approver_user_id=user_id,
                approver_role=role,
                step_id=step_id,
            )
        )

    for level, count in sorted(Counter(valid_levels).items()):
        if count > 1:
            errors.append(f"level {level} is used by {count} steps")

    for step_id, count in Counter(seen_ids).items():
        if count > 1:
            errors.append(f"step {step_id} appears {count} times")

    return tuple(normalized), errors


def approver_user_ids(desired: Iterable[DesiredStep]) -> set[UUID]:
    """User ids referenced by a normalized chain, for one directory lookup."""
    return {
        d.approver_user_id
        for d in desired
        if isinstance(d.approver_user_id, UUID)
    }


# =============================================================================
# Chain diff
# =============================================================================


def compute_chain_diff(
    existing: Sequence[ApprovalStep],
    desired: Sequence[DesiredStep],
) -> ChainDiff:
    """Compute the create/update/delete sets that turn ``existing`` into ``desired``.

    Desired steps are matched to existing steps by ``step_id``.  A matched
    pair whose level, approver user or approver role differ becomes a
    ``StepUpdate`` (the decision resets to pending when applied); an
    identical pair is unchanged.  Desired steps without an id are created.
    Existing steps with no matching desired id are deleted.

    Preconditions:
        ``desired`` has been normalized by ``normalize_desired_chain``
        without errors.
    """
    by_id = {step.step_id: step for step in existing}
    matched: set[UUID] = set()

    creates: list[DesiredStep] = []
    updates: list[StepUpdate] = []
    unchanged: list[UUID] = []

    for want in desired:
        if want.step_id is None:
            creates.append(want)
            continue

        current = by_id[want.step_id]
        matched.add(current.step_id)
        if (
            current.level == want.level
            and current.approver_user_id == want.approver_user_id
            and current.approver_role == want.approver_role
        ):
            unchanged.append(current.step_id)
        else:
            updates.append(
                StepUpdate(
                    step_id=current.step_id,
                    level=want.level,
                    approver_user_id=want.approver_user_id,
                    approver_role=want.approver_role,
                )
            )

    deletes = [
        step.step_id
        for step in sorted(existing, key=lambda s: s.level)
        if step.step_id not in matched
    ]

    return ChainDiff(
        creates=tuple(sorted(creates, key=lambda d: d.level)),
        updates=tuple(updates),
        deletes=tuple(deletes),
        unchanged=tuple(unchanged),
    )


# =============================================================================
# Aggregation
# =============================================================================


def _contiguous_approved_level(steps: Sequence[ApprovalStep]) -> int | None:
    highest: int | None = None
    for step in sorted(steps, key=lambda s: s.level):
        if step.decision != StepDecision.APPROVED:
            break
        highest = step.level
    return highest


def aggregate_status(
    steps: Sequence[ApprovalStep],
    policy: AggregationPolicy = AggregationPolicy.ANY_APPROVAL_WINS,
) -> AggregateStatus:
    """Derive the submission status from the live steps.

    ``ANY_APPROVAL_WINS``:
        any approved -> approved at the highest approved level;
        non-empty and all rejected -> rejected; otherwise pending.

    ``SEQUENTIAL``:
        any rejected -> rejected; non-empty and all approved -> approved at
        the top level; otherwise pending at the highest contiguous approved
        level.
    """
    if not steps:
        return AggregateStatus(status=SubmissionStatus.PENDING)

    approved = [s.level for s in steps if s.decision == StepDecision.APPROVED]
    rejected = [s for s in steps if s.decision == StepDecision.REJECTED]

    if policy == AggregationPolicy.SEQUENTIAL:
        if rejected:
            return AggregateStatus(status=SubmissionStatus.REJECTED)
        if len(approved) == len(steps):
            return AggregateStatus(
                status=SubmissionStatus.APPROVED,
                current_approved_level=max(approved),
            )
        return AggregateStatus(
            status=SubmissionStatus.PENDING,
            current_approved_level=_contiguous_approved_level(steps),
        )

    if approved:
        return AggregateStatus(
            status=SubmissionStatus.APPROVED,
            current_approved_level=max(approved),
        )
    if len(rejected) == len(steps):
        return AggregateStatus(status=SubmissionStatus.REJECTED)
    return AggregateStatus(status=SubmissionStatus.PENDING)


def blocking_levels(steps: Sequence[ApprovalStep], level: int) -> tuple[int, ...]:
    """Lower levels that are not approved yet (sequential ordering check)."""
    return tuple(
        sorted(
            s.level
            for s in steps
            if s.level < level and s.decision != StepDecision.APPROVED
        )
    )


# =============================================================================
# Return to work
# =============================================================================


def return_to_work_date(
    leave_end_date: date | None,
    override: date | None = None,
) -> date | None:
    """The day the requester is scheduled back at work.

    The caller-supplied override wins; otherwise the day after the leave
    ends.  None when neither is known.
    """
    if override is not None:
        return override
    if leave_end_date is None:
        return None
    return leave_end_date + timedelta(days=1)


def leave_days(start: date | None, end: date | None) -> tuple[date, ...]:
    """Every calendar day of a leave, both ends included.

    A leave without an end date covers its start date only.
    """
    if start is None:
        return ()
    if end is None or end < start:
        return (start,)
    return tuple(start + timedelta(days=n) for n in range((end - start).days + 1))


# =============================================================================
# Tagged delegates and day swaps
# =============================================================================


def normalize_tagged_user_ids(raw: Iterable[Any]) -> tuple[tuple[UUID, ...], list[str]]:
    """Parse tagged delegate ids, dropping repeats but keeping order.

    Returns:
        ``(user_ids, errors)``; ``user_ids`` is only meaningful when
        ``errors`` is empty.
    """
    user_ids: list[UUID] = []
    errors: list[str] = []
    for index, value in enumerate(raw):
        user_id = _as_uuid(value)
        if user_id is None:
            errors.append(f"tagged_user_ids[{index}]: {value!r} is not a valid user id")
        elif user_id not in user_ids:
            user_ids.append(user_id)
    return tuple(user_ids), errors


def swap_pair_errors(pairs: Sequence[DaySwapPair]) -> list[str]:
    """Structural problems of a day swap: same-day pairs and reused dates."""
    errors: list[str] = []
    seen: Counter[date] = Counter()
    for index, pair in enumerate(pairs):
        if pair.off_date == pair.work_date:
            errors.append(f"swap_pairs[{index}]: off_date and work_date are the same day")
        seen.update({pair.off_date, pair.work_date})
    for day in sorted(d for d, count in seen.items() if count > 1):
        errors.append(f"swap_pairs: {day.isoformat()} appears in more than one pair")
    return errors
