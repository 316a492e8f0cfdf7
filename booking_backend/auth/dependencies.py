from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from booking_backend.auth import jwt_handler
from booking_backend.booking.lifecycle import AppointmentLifecycleManager
from booking_backend.database import get_db
from booking_backend.integrations.google_calendar import CalendarClient
from booking_backend.models.user import User, UserRole

security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = db.get(User, int(subject))
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Forbidden: insufficient permissions")
    return user


def get_calendar_client(request: Request) -> CalendarClient:
    return request.app.state.calendar_client


def get_lifecycle_manager(
    db: Session = Depends(get_db),
    calendar: CalendarClient = Depends(get_calendar_client),
) -> AppointmentLifecycleManager:
    return AppointmentLifecycleManager(db, calendar)
