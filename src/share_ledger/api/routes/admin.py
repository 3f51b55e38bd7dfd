"""Admin endpoints: cross-user order listing, status override, reservation sweep."""

import logging

from fastapi import APIRouter, Depends, Query

from share_ledger.api.identity import require_admin
from share_ledger.api.models import (
    AdminStatusRequest,
    OrderListResponse,
    OrderResponse,
    SweepResponse,
)
from share_ledger.core.identity import Actor
from share_ledger.core.orders import OrderService
from share_ledger.core.states import OrderSide, OrderStatus
from share_ledger.db.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

logger = logging.getLogger(__name__)


def router(service: OrderService) -> APIRouter:
    """Build the admin router. Every route requires ``X-User-Role: admin``."""
    api = APIRouter(prefix="/admin", tags=["admin"])

    @api.get("/orders", response_model=OrderListResponse)
    def list_all_orders(
        user_id: str | None = None,
        listing_id: str | None = None,
        status: OrderStatus | None = None,
        side: OrderSide | None = None,
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
        actor: Actor = Depends(require_admin),
    ):
        """List orders across all users with optional filters."""
        orders, total = service.list_orders(
            actor,
            user_id=user_id,
            listing_id=listing_id,
            status=status,
            side=side,
            page=page,
            limit=limit,
        )
        return OrderListResponse(
            orders=[OrderResponse.from_order(order) for order in orders],
            total=total,
            page=page,
            limit=limit,
        )

    @api.put("/orders/{order_id}/status", response_model=OrderResponse)
    def update_order_status(
        order_id: str,
        request: AdminStatusRequest,
        actor: Actor = Depends(require_admin),
    ):
        """
        Move an order to ``request.status`` through the normal lifecycle paths.

        Completing a pending order requires the ``payment_ref`` of a charge
        taken outside the engine.
        """
        logger.info("Admin %s setting order %s to %s", actor.user_id, order_id, request.status)
        order = service.update_order_status(
            order_id,
            request.status,
            actor,
            notes=request.notes,
            payment_ref=request.payment_ref,
        )
        return OrderResponse.from_order(order)

    @api.post("/reservations/sweep", response_model=SweepResponse)
    def sweep_reservations(_actor: Actor = Depends(require_admin)):
        """Release expired reservations and fail their pending orders."""
        failed = service.expire_stale_reservations()
        return SweepResponse(
            failed_orders=[OrderResponse.from_order(order) for order in failed],
            count=len(failed),
        )

    return api
