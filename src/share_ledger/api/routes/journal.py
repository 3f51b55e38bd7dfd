"""Journal integrity endpoint."""

from fastapi import APIRouter, Depends, Query

from share_ledger.api.identity import get_actor
from share_ledger.api.models import VerificationResponse
from share_ledger.core.identity import Actor
from share_ledger.core.orders import OrderService


def router(service: OrderService) -> APIRouter:
    """Build the journal router."""
    api = APIRouter(prefix="/journal", tags=["journal"])

    @api.get("/verify", response_model=VerificationResponse)
    def verify_journal(
        from_seq: int | None = Query(default=None, ge=1),
        to_seq: int | None = Query(default=None, ge=1),
        _actor: Actor = Depends(get_actor),
    ):
        """
        Recompute the hash chain over ``[from_seq, to_seq]``.

        A mismatch is reported in the body (``ok: false``) and halts further
        journal appends until an operator clears the halt.
        """
        result = service.verify_journal(from_seq, to_seq)
        return VerificationResponse.from_result(result, service.journal_halt())

    return api
