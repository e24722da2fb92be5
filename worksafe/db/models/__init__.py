"""Database models for WorkSafe."""

from worksafe.db.models.user import User
from worksafe.db.models.site import Site, SiteRoleAssignment
from worksafe.db.models.permit import Permit, PermitHistory, PermitClosure
from worksafe.db.models.extension import PermitExtension
from worksafe.db.models.approval import PermitApproval, ExtensionApproval
from worksafe.db.models.notification import (
    Notification,
    NotificationLog,
    NotificationChannel,
    NotificationEventType,
)

__all__ = [
    "User",
    "Site",
    "SiteRoleAssignment",
    "Permit",
    "PermitHistory",
    "PermitClosure",
    "PermitExtension",
    "PermitApproval",
    "ExtensionApproval",
    "Notification",
    "NotificationLog",
    "NotificationChannel",
    "NotificationEventType",
]
