"""
HR Kernel - multi-level approval workflow engine

Submissions (leave, sick leave, hourly leave, day swap) with:
- Ordered approval chains editable until the first decision
- Exactly-once step decisions under concurrent access
- Aggregate submission status derived from step decisions
- Typed errors and structured logging
"""

__version__ = "0.1.0"
