"""Kernel services: flush-only writers for the approval aggregate."""

from hr_kernel.services.base import BaseService, load_submission_for_update
from hr_kernel.services.decision_service import DecisionService
from hr_kernel.services.reconciliation_service import ReconciliationService
from hr_kernel.services.submission_service import SubmissionService

__all__ = [
    "BaseService",
    "DecisionService",
    "ReconciliationService",
    "SubmissionService",
    "load_submission_for_update",
]
