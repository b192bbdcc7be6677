from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models.enums import OrderStatus
from app.models.partner import Partner
from app.models.user import User
from app.schemas.order import OrderResponse
from app.schemas.responses import SuccessResponse, PaginatedResponse
from app.services.order_service import OrderService

router = APIRouter()


def _page(orders, total: int, page: int, page_size: int) -> PaginatedResponse:
    total_pages = (total + page_size - 1) // page_size
    return PaginatedResponse(
        data=[OrderResponse.from_order(o) for o in orders],
        meta={
            "page": page,
            "page_size": page_size,
            "total": total,
            "total_pages": total_pages
        }
    )


@router.get("", response_model=PaginatedResponse[OrderResponse])
async def list_my_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = Query(None),
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Get paginated list of the caller's orders.
    """
    skip = (page - 1) * page_size
    orders, total = await OrderService.list_user_orders(
        db, current_user.id, skip=skip, limit=page_size, status=status
    )
    return _page(orders, total, page, page_size)


@router.get("/partner/list", response_model=PaginatedResponse[OrderResponse])
async def list_partner_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = Query(None),
    partner: Partner = Depends(deps.require_partner),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Get paginated list of orders paid to the caller's business.
    """
    skip = (page - 1) * page_size
    orders, total = await OrderService.list_partner_orders(
        db, partner.id, skip=skip, limit=page_size, status=status
    )
    return _page(orders, total, page, page_size)


@router.get("/{order_id}", response_model=SuccessResponse[OrderResponse])
async def get_order(
    order_id: str,
    current_user: User = Depends(deps.get_current_user),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Get one of the caller's orders by its TT- id"""
    order = await OrderService.get_order_for_user(db, order_id, current_user.id)
    return SuccessResponse(data=OrderResponse.from_order(order))
