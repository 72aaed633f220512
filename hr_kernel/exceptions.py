"""
Typed Exception Hierarchy for the HR approval kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure the approval engine reports has its own class, a
machine-readable ``code`` class attribute, and carries its context as
attributes.  Callers catch by type and read structured data instead of
parsing messages:

    try:
        workflow.decide(step_id=step_id, actor_id=actor_id, ...)
    except StepAlreadyDecidedError as e:
        api_response(status=409, code=e.code, step_id=e.step_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from ApprovalEngineError:

    ApprovalEngineError (base)
    |
    +-- ValidationError                      (HTTP 400)
    |   +-- ChainValidationError
    |   +-- UnresolvedApproversError
    |   +-- InvalidApproverRoleError
    |   +-- InvalidDecisionError
    |   +-- EmptyApprovalChainError
    |   +-- InvalidRequestError
    |
    +-- AuthenticationError                  (HTTP 401)
    |   +-- NotAuthenticatedError
    |
    +-- ForbiddenError                       (HTTP 403)
    |   +-- UnauthorizedApproverError
    |   +-- SubmissionAccessDeniedError
    |
    +-- NotFoundError                        (HTTP 404)
    |   +-- SubmissionNotFoundError
    |   +-- ApprovalStepNotFoundError
    |
    +-- ConflictError                        (HTTP 409)
    |   +-- StepAlreadyDecidedError
    |   +-- ChainFrozenError
    |   +-- SubmissionFinalizedError
    |   +-- OutOfOrderDecisionError
    |   +-- OptimisticLockError
    |
    +-- PersistenceError                     (HTTP 500)

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                       | When Raised
--------------|----------------------------|-------------------------------------------
Validation    | INVALID_APPROVAL_CHAIN     | Bad/duplicate level, bad approver ref
              | UNRESOLVED_APPROVERS       | approver_user_id not an active user
              | INVALID_APPROVER_ROLE      | Role outside the closed role set
              | INVALID_DECISION           | Decision not approved/rejected
              | EMPTY_APPROVAL_CHAIN       | Submission created without steps
              | INVALID_REQUEST            | Malformed request body
--------------|----------------------------|-------------------------------------------
Auth          | NOT_AUTHENTICATED          | No actor on the request
              | UNAUTHORIZED_APPROVER      | Actor is not the step's approver
              | SUBMISSION_ACCESS_DENIED   | Actor may not cancel the submission
--------------|----------------------------|-------------------------------------------
Not found     | SUBMISSION_NOT_FOUND       | Missing or soft-deleted submission
              | APPROVAL_STEP_NOT_FOUND    | Missing or soft-deleted step
--------------|----------------------------|-------------------------------------------
Conflict      | STEP_ALREADY_DECIDED       | Step decision is no longer pending
              | APPROVAL_CHAIN_FROZEN      | Chain edit after a decision was made
              | SUBMISSION_FINALIZED       | Submission already approved/rejected
              | OUT_OF_ORDER_DECISION      | Sequential policy, lower level open
              | OPTIMISTIC_LOCK_CONFLICT   | Version retries exhausted
--------------|----------------------------|-------------------------------------------
Persistence   | PERSISTENCE_ERROR          | Transaction or commit failure
"""

from __future__ import annotations

from collections.abc import Iterable


class ApprovalEngineError(Exception):
    """
    Base exception for all approval engine errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "APPROVAL_ENGINE_ERROR"


# Validation exceptions


class ValidationError(ApprovalEngineError):
    """Base exception for malformed input.  Raised before any mutation."""

    code: str = "VALIDATION_ERROR"


class ChainValidationError(ValidationError):
    """One or more structural problems in a desired approval chain.

    All problems found are reported together in ``errors``.
    """

    code: str = "INVALID_APPROVAL_CHAIN"

    def __init__(self, errors: Iterable[str]):
        self.errors = list(errors)
        super().__init__(
            "Invalid approval chain: " + "; ".join(self.errors)
        )


class UnresolvedApproversError(ValidationError):
    """Approver or tagged user ids that do not exist or are inactive.

    ``user_ids`` lists every unresolved id; ``tagged_user_ids`` is the
    subset that came from the tagged delegates.
    """

    code: str = "UNRESOLVED_APPROVERS"

    def __init__(
        self,
        user_ids: Iterable[str],
        tagged_user_ids: Iterable[str] = (),
    ):
        self.user_ids = sorted(str(u) for u in user_ids)
        self.tagged_user_ids = sorted(str(u) for u in tagged_user_ids)
        super().__init__(
            f"Users not found or inactive: {', '.join(self.user_ids)}"
        )


class InvalidApproverRoleError(ValidationError):
    """Role value outside the closed approver role enumeration."""

    code: str = "INVALID_APPROVER_ROLE"

    def __init__(self, role: str):
        self.role = role
        super().__init__(f"Unknown approver role: {role!r}")


class InvalidDecisionError(ValidationError):
    """Decision value is not one of approved/rejected."""

    code: str = "INVALID_DECISION"

    def __init__(self, value: object):
        self.value = value
        super().__init__(
            f"Decision must be 'approved' or 'rejected', got {value!r}"
        )


class EmptyApprovalChainError(ValidationError):
    """A submission must be created with at least one approval step."""

    code: str = "EMPTY_APPROVAL_CHAIN"

    def __init__(self):
        super().__init__("A submission requires at least one approval step")


class InvalidRequestError(ValidationError):
    """Request body could not be parsed."""

    code: str = "INVALID_REQUEST"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid field '{field}': {reason}")


# Authentication / authorization exceptions


class AuthenticationError(ApprovalEngineError):
    """Base exception for missing identity."""

    code: str = "AUTHENTICATION_ERROR"


class NotAuthenticatedError(AuthenticationError):
    """The request carries no authenticated actor."""

    code: str = "NOT_AUTHENTICATED"

    def __init__(self):
        super().__init__("Request is not authenticated")


class ForbiddenError(ApprovalEngineError):
    """Base exception for an actor acting outside its authority."""

    code: str = "FORBIDDEN"


class UnauthorizedApproverError(ForbiddenError):
    """Actor matches neither the step's approver user nor its approver role."""

    code: str = "UNAUTHORIZED_APPROVER"

    def __init__(self, step_id: str, actor_id: str, actor_role: str | None):
        self.step_id = step_id
        self.actor_id = actor_id
        self.actor_role = actor_role
        super().__init__(
            f"Actor {actor_id} (role={actor_role}) is not the approver "
            f"of step {step_id}"
        )


class SubmissionAccessDeniedError(ForbiddenError):
    """Actor is neither the requester nor an administrator."""

    code: str = "SUBMISSION_ACCESS_DENIED"

    def __init__(self, submission_id: str, actor_id: str):
        self.submission_id = submission_id
        self.actor_id = actor_id
        super().__init__(
            f"Actor {actor_id} may not modify submission {submission_id}"
        )


# Not-found exceptions


class NotFoundError(ApprovalEngineError):
    """Base exception for missing or soft-deleted records."""

    code: str = "NOT_FOUND"


class SubmissionNotFoundError(NotFoundError):
    """Submission does not exist or was soft-deleted."""

    code: str = "SUBMISSION_NOT_FOUND"

    def __init__(self, submission_id: str):
        self.submission_id = submission_id
        super().__init__(f"Submission not found: {submission_id}")


class ApprovalStepNotFoundError(NotFoundError):
    """Approval step does not exist or was removed from its chain."""

    code: str = "APPROVAL_STEP_NOT_FOUND"

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(f"Approval step not found: {step_id}")


# Conflict exceptions


class ConflictError(ApprovalEngineError):
    """Base exception for operations rejected by current state."""

    code: str = "CONFLICT"


class StepAlreadyDecidedError(ConflictError):
    """The step no longer has a pending decision."""

    code: str = "STEP_ALREADY_DECIDED"

    def __init__(self, step_id: str, decision: str | None = None):
        self.step_id = step_id
        self.decision = decision
        detail = f" ({decision})" if decision else ""
        super().__init__(f"Approval step {step_id} is already decided{detail}")


class ChainFrozenError(ConflictError):
    """At least one step is decided; the chain can no longer be edited."""

    code: str = "APPROVAL_CHAIN_FROZEN"

    def __init__(self, submission_id: str, decided_levels: Iterable[int] = ()):
        self.submission_id = submission_id
        self.decided_levels = sorted(decided_levels)
        super().__init__(
            f"Approval chain of submission {submission_id} is frozen: "
            f"levels {self.decided_levels} already decided"
        )


class SubmissionFinalizedError(ConflictError):
    """Submission already reached a terminal status."""

    code: str = "SUBMISSION_FINALIZED"

    def __init__(self, submission_id: str, status: str):
        self.submission_id = submission_id
        self.status = status
        super().__init__(f"Submission {submission_id} is already {status}")


class OutOfOrderDecisionError(ConflictError):
    """Sequential policy: a lower level has not been approved yet."""

    code: str = "OUT_OF_ORDER_DECISION"

    def __init__(self, step_id: str, level: int, blocking_levels: Iterable[int]):
        self.step_id = step_id
        self.level = level
        self.blocking_levels = sorted(blocking_levels)
        super().__init__(
            f"Level {level} cannot be decided before levels "
            f"{self.blocking_levels} are approved"
        )


class OptimisticLockError(ConflictError):
    """Concurrent modification persisted after all retries."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Persistence exceptions


class PersistenceError(ApprovalEngineError):
    """The transaction could not be completed; nothing was committed."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Persistence failure during {operation}: {reason}")
