"""Credit router - balances, usage and admin grants"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import User
from .schemas import CreditSummaryResponse, GrantCreditsRequest
from .service import CreditService, serialize_credit

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Credits"])


def get_credit_service(db: Session = Depends(get_db)) -> CreditService:
    """Dependency injection for CreditService"""
    return CreditService(db)


@router.get("/user/credits", response_model=CreditSummaryResponse)
async def get_user_credits(
    current_user: User = Depends(get_current_user),
    service: CreditService = Depends(get_credit_service),
):
    return service.get_summary(current_user)


@router.get("/user/credits/usage")
async def get_credit_usage(
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: CreditService = Depends(get_credit_service),
):
    usage = service.get_usage(current_user, limit)
    return {"success": True, "usage": usage, "total": len(usage)}


@router.post("/admin/credits/grant", status_code=201)
async def grant_credits(
    data: GrantCreditsRequest,
    current_user: User = Depends(require_admin),
    service: CreditService = Depends(get_credit_service),
):
    """Add credits to an account without going through payments"""
    credits = service.grant_credits(current_user, data)
    return {"success": True, "granted": len(credits), "credits": [serialize_credit(c) for c in credits]}
