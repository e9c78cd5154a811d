"""Earnings router - session earnings calculation and reports"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import require_roles
from ...database import get_db
from ...models import User
from .schemas import CalculateEarningsRequest
from .service import EarningsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/earnings", tags=["Earnings"])

require_therapist_or_admin = require_roles("therapist", "admin")


def get_earnings_service(db: Session = Depends(get_db)) -> EarningsService:
    """Dependency injection for EarningsService"""
    return EarningsService(db)


@router.post("/calculate", status_code=201)
async def calculate_earnings(
    data: CalculateEarningsRequest,
    current_user: User = Depends(require_therapist_or_admin),
    service: EarningsService = Depends(get_earnings_service),
):
    """Record the therapist's share and the platform fee for a completed session"""
    return {"success": True, **service.calculate_session_earnings(current_user, data.session_id)}


@router.get("/report")
async def get_earnings_report(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    therapist_id: Optional[int] = Query(None),
    current_user: User = Depends(require_therapist_or_admin),
    service: EarningsService = Depends(get_earnings_service),
):
    if current_user.user_type == "admin":
        if therapist_id is None:
            raise HTTPException(status_code=400, detail="therapist_id is required")
    else:
        therapist_id = current_user.id
    return {"success": True, "report": service.get_report(therapist_id, start_date, end_date)}
