from datetime import datetime, timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from kitab.dependencies import require_admin
from kitab.models import User, get_db
from kitab.schemas.analytics import AnalyticsResponse
from kitab.services.analytics import build_analytics
from kitab.services.timeutils import as_utc, utcnow

router = APIRouter()

DEFAULT_RANGE_DAYS = 30


@router.get(
    "",
    response_model=AnalyticsResponse,
    summary="Sales analytics (admin)",
)
def get_analytics(
    admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
    start: datetime | None = None,
    end: datetime | None = None,
):
    """Summary of buy-now and buy-later sales created between ``start`` and ``end`` (default: last 30 days)."""
    end = as_utc(end) if end else utcnow()
    start = as_utc(start) if start else end - timedelta(days=DEFAULT_RANGE_DAYS)
    if start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start must be before end")
    return build_analytics(db, start, end)
