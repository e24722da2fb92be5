from typing import Generator
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from worksafe.db.session import SessionLocal
from worksafe.db.models import User
from worksafe.core.security import decode_token
from worksafe.core.permits import (
    CeleryNotificationSink,
    ExtensionWorkflow,
    NotificationSink,
    PermitWorkflow,
)
from worksafe.core.approval.roles import SiteRoleResolver

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    db: Session = Depends(get_db),
    token: str = Depends(oauth2_scheme),
) -> User:
    """Get current authenticated user from JWT token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if token:
        user_id = decode_token(token)
        if user_id:
            user = db.query(User).filter(User.id == user_id).first()
            if user and user.is_active:
                return user

    raise credentials_exception


def get_notification_sink() -> NotificationSink:
    """Notification sink used by the workflows."""
    return CeleryNotificationSink()


def get_permit_workflow(
    db: Session = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink),
) -> PermitWorkflow:
    return PermitWorkflow(db, SiteRoleResolver(db), sink=sink)


def get_extension_workflow(
    db: Session = Depends(get_db),
    sink: NotificationSink = Depends(get_notification_sink),
) -> ExtensionWorkflow:
    return ExtensionWorkflow(db, sink=sink)
