"""Permit and extension workflows."""

from .events import (
    WorkflowEvent,
    NotificationSink,
    NullNotificationSink,
    CeleryNotificationSink,
    emit_safely,
)
from .service import PermitWorkflow, WorkWindow, CHECKLIST_ITEMS
from .extensions import ExtensionWorkflow

__all__ = [
    "WorkflowEvent",
    "NotificationSink",
    "NullNotificationSink",
    "CeleryNotificationSink",
    "emit_safely",
    "PermitWorkflow",
    "WorkWindow",
    "CHECKLIST_ITEMS",
    "ExtensionWorkflow",
]
