"""Order endpoints: submit, inspect, cancel and retry.

Handlers are plain ``def`` functions: the order service blocks on SQLite
and on the payment gateway, so FastAPI runs them in its worker threadpool.
"""

from fastapi import APIRouter, Depends, Query, Response

from share_ledger.api.identity import get_actor
from share_ledger.api.models import (
    JournalEntryResponse,
    OrderActionRequest,
    OrderDetailResponse,
    OrderHistoryItem,
    OrderListResponse,
    OrderResponse,
    SubmitOrderRequest,
)
from share_ledger.core.identity import Actor
from share_ledger.core.orders import OrderService
from share_ledger.core.states import OrderStatus
from share_ledger.db.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


def router(service: OrderService) -> APIRouter:
    """Build the orders router around ``service``."""
    api = APIRouter(prefix="/orders", tags=["orders"])

    @api.post("", response_model=OrderResponse, status_code=201)
    def submit_order(
        request: SubmitOrderRequest,
        response: Response,
        actor: Actor = Depends(get_actor),
    ):
        """
        Submit a buy or sell order for the acting user.

        Responds 201 with the completed order, or 402 with the failed order
        when the charge was declined or never went through.
        """
        order = service.submit_order(
            actor.user_id,
            request.listing_id,
            request.shares,
            side=request.side,
            payment_method_id=request.payment_method_id,
            notes=request.notes,
        )
        if order.status is OrderStatus.FAILED:
            response.status_code = 402
        return OrderResponse.from_order(order)

    @api.get("", response_model=OrderListResponse)
    def list_orders(
        status: OrderStatus | None = None,
        listing_id: str | None = None,
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
        actor: Actor = Depends(get_actor),
    ):
        """List the acting user's orders, newest first."""
        orders, total = service.list_orders(
            actor,
            user_id=actor.user_id,
            status=status,
            listing_id=listing_id,
            page=page,
            limit=limit,
        )
        return OrderListResponse(
            orders=[OrderResponse.from_order(order) for order in orders],
            total=total,
            page=page,
            limit=limit,
        )

    @api.get("/{order_id}", response_model=OrderDetailResponse)
    def get_order(order_id: str, actor: Actor = Depends(get_actor)):
        """Order with its status history and journal entries."""
        order = service.get_order(order_id, actor)
        return OrderDetailResponse(
            order=OrderResponse.from_order(order),
            history=[
                OrderHistoryItem.from_entry(entry)
                for entry in service.get_order_history(order_id, actor)
            ],
            journal=[
                JournalEntryResponse.from_entry(entry)
                for entry in service.get_order_journal(order_id, actor)
            ],
        )

    @api.post("/{order_id}/cancel", response_model=OrderResponse)
    def cancel_order(
        order_id: str,
        request: OrderActionRequest | None = None,
        actor: Actor = Depends(get_actor),
    ):
        """Cancel an order. Cancelling twice returns the cancelled order."""
        order = service.cancel_order(order_id, actor, notes=request.notes if request else None)
        return OrderResponse.from_order(order)

    @api.post("/{order_id}/retry", response_model=OrderResponse)
    def retry_order(
        order_id: str,
        response: Response,
        request: OrderActionRequest | None = None,
        actor: Actor = Depends(get_actor),
    ):
        """Retry a failed buy with its original idempotency key."""
        order = service.retry_order(order_id, actor, notes=request.notes if request else None)
        if order.status is OrderStatus.FAILED:
            response.status_code = 402
        return OrderResponse.from_order(order)

    return api
