import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.auth.dependencies import get_current_user
from booking_backend.database import get_db
from booking_backend.models.location import Location
from booking_backend.models.user import User
from booking_backend.schemas import LocationResponse

router = APIRouter(tags=['locations'])

logger = logging.getLogger(__name__)


@router.get('', response_model=LocationResponse)
def get_location_by_name(
    name: str = Query(...),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    normalized_name = name.strip()
    if not normalized_name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Location name is required.',
        )

    try:
        location = db.query(Location).filter(Location.name == normalized_name).first()
    except SQLAlchemyError as exc:
        logger.exception('Location lookup failed')
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Please try again later.',
        ) from exc

    if location is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Location not found.',
        )

    return location
