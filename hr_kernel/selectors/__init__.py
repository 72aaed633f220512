"""Read-only selectors for the HR approval kernel."""

from hr_kernel.selectors.approval_selector import ApprovalSelector
from hr_kernel.selectors.base import BaseSelector

__all__ = ["ApprovalSelector", "BaseSelector"]
