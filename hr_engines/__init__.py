"""
Pure calculation engines for the HR approval workflow.

Engines take domain value objects and return domain value objects.  They
never touch the database, the clock or any other I/O.
"""

from hr_engines.approval import (
    aggregate_status,
    approver_user_ids,
    blocking_levels,
    compute_chain_diff,
    is_authorized_approver,
    leave_days,
    normalize_desired_chain,
    normalize_tagged_user_ids,
    parse_role,
    return_to_work_date,
    role_matches,
    swap_pair_errors,
)

__all__ = [
    "aggregate_status",
    "approver_user_ids",
    "blocking_levels",
    "compute_chain_diff",
    "is_authorized_approver",
    "leave_days",
    "normalize_desired_chain",
    "normalize_tagged_user_ids",
    "parse_role",
    "return_to_work_date",
    "role_matches",
    "swap_pair_errors",
]
