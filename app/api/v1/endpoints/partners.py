from typing import Any

from fastapi import APIRouter, Depends

from app.api import deps
from app.models.partner import Partner
from app.schemas.partner import PartnerAnalytics
from app.schemas.responses import SuccessResponse

router = APIRouter()


@router.get("/analytics", response_model=SuccessResponse[PartnerAnalytics])
async def get_analytics(
    partner: Partner = Depends(deps.require_partner),
) -> Any:
    """Sales counters for the caller's business"""
    return SuccessResponse(data=PartnerAnalytics.from_partner(partner))
