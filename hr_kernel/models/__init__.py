"""ORM models for the HR approval kernel."""

from hr_kernel.models.employee import EmployeeModel
from hr_kernel.models.handover import HandoverModel
from hr_kernel.models.notification import NotificationModel
from hr_kernel.models.schedule import ShiftModel, ShiftStatus
from hr_kernel.models.submission import (
    ApprovalStepModel,
    DaySwapPairModel,
    SubmissionModel,
)

__all__ = [
    "ApprovalStepModel",
    "DaySwapPairModel",
    "EmployeeModel",
    "HandoverModel",
    "NotificationModel",
    "ShiftModel",
    "ShiftStatus",
    "SubmissionModel",
]
