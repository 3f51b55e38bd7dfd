"""Order service: drives orders through their lifecycle.

This is the only component that opens write transactions. Each step of an
order's life is one ``connection_scope(write=True)`` block, so inventory,
holdings, journal and order status change together or not at all.

Buy lifecycle::

    txn A   reserve shares, insert PENDING order
    ----    gateway.charge(user, amount, idempotency_key)   (no transaction open)
    txn C   success: commit reservation, journal purchase pair, add holding, COMPLETED
            failure: release reservation, journal failed attempt, FAILED

Sells complete in a single transaction: the holding is reduced, the shares
go back to the listing and a ``sale`` pair is journaled. Payouts to the
seller happen outside the engine.

Every transition of one order runs under that order's in-process lock, and
paths that touch a holding around a gateway call also hold the holding's
lock.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from share_ledger.config import config
from share_ledger.core.errors import (
    InsufficientHoldings,
    InsufficientInventory,
    ListingNotActive,
    PaymentFailed,
    PermissionDenied,
    ReservationExpired,
    ValidationError,
)
from share_ledger.core.identity import SYSTEM_ACTOR, Actor
from share_ledger.core.locks import KeyedLocks
from share_ledger.core.money import ZERO, order_amount, to_money
from share_ledger.core.payments import ChargeResult, PaymentGateway
from share_ledger.core.states import OrderSide, OrderStatus, ensure_transition
from share_ledger.db import holdings_repo, journal_repo, listings_repo, orders_repo
from share_ledger.db.connection import connection_scope
from share_ledger.db.constants import DEBIT, listing_account, user_account, utc_now_iso
from share_ledger.db.listings_repo import require_positive_shares
from share_ledger.db.types import (
    Holding,
    JournalEntry,
    JournalHalt,
    Listing,
    Order,
    OrderHistoryEntry,
    VerificationResult,
)

logger = logging.getLogger(__name__)

REASON_RESERVATION_EXPIRED = "reservation_expired"
REASON_PAYMENT_DECLINED = "payment_declined"


@dataclass(frozen=True, slots=True)
class PortfolioSummary:
    """Aggregate view of one user's positions.

    Attributes:
        total_invested: Sum of ``quantity * average_cost_basis``.
        portfolio_value: Sum of ``quantity * current price_per_share``.
        total_returns: ``portfolio_value - total_invested``.
        active_positions: Holdings with a non-zero quantity.
    """

    user_id: str
    total_invested: Decimal
    portfolio_value: Decimal
    total_returns: Decimal
    active_positions: int


def _require_id(value: object, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be a non-empty string")
    return value.strip()


def _holding_key(user_id: str, listing_id: str) -> str:
    return f"{user_id}\x1f{listing_id}"


class OrderService:
    """Order lifecycle operations over the SQLite ledger.

    Args:
        gateway: Payment collaborator used for charges and refunds.
        reservation_ttl_seconds: Lifetime of a share reservation. Defaults to
            ``config.ledger.reservation_ttl_seconds``.
        max_retries: Extra charge attempts after a retryable failure. Defaults
            to ``config.payment.max_retries``.
        sweep_batch_size: Reservations handled per sweep call.
        clock: Returns the current UTC time; tests substitute a fixed clock.
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        *,
        reservation_ttl_seconds: int | None = None,
        max_retries: int | None = None,
        sweep_batch_size: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.gateway = gateway
        self.reservation_ttl_seconds = (
            reservation_ttl_seconds
            if reservation_ttl_seconds is not None
            else config.ledger.reservation_ttl_seconds
        )
        self.max_retries = max(
            0, max_retries if max_retries is not None else config.payment.max_retries
        )
        self.sweep_batch_size = (
            sweep_batch_size if sweep_batch_size is not None else config.ledger.sweep_batch_size
        )
        self._clock = clock or (lambda: datetime.now(UTC))
        self._order_locks = KeyedLocks()
        self._holding_locks = KeyedLocks()

    # ── Submission ────────────────────────────────────────────────────────────

    def submit_order(
        self,
        user_id: str,
        listing_id: str,
        shares: int,
        *,
        side: OrderSide | str = OrderSide.BUY,
        payment_method_id: str | None = None,
        notes: str | None = None,
    ) -> Order:
        """Create an order and drive it to a settled state.

        Returns:
            The order, ``COMPLETED`` on success or ``FAILED`` when the charge
            was declined or never went through.

        Raises:
            ValidationError: Malformed input; nothing was written.
            ListingNotFound, ListingNotActive: The listing cannot be bought.
            InsufficientInventory: Not enough shares; no order was created.
            InsufficientHoldings: A sell for more shares than are held.
        """
        user_id = _require_id(user_id, "user_id")
        listing_id = _require_id(listing_id, "listing_id")
        require_positive_shares(shares)
        try:
            side = OrderSide(side)
        except ValueError as exc:
            raise ValidationError(f"side must be 'buy' or 'sell', got {side!r}") from exc

        if side is OrderSide.SELL:
            return self._submit_sell(user_id, listing_id, shares, payment_method_id, notes)
        return self._submit_buy(user_id, listing_id, shares, payment_method_id, notes)

    def _submit_buy(
        self,
        user_id: str,
        listing_id: str,
        shares: int,
        payment_method_id: str | None,
        notes: str | None,
    ) -> Order:
        with connection_scope(write=True) as conn:
            reservation = listings_repo.reserve(
                conn,
                listing_id,
                shares,
                ttl_seconds=self.reservation_ttl_seconds,
                now=self._clock(),
            )
            listing = listings_repo.get_listing(conn, listing_id)
            order = orders_repo.insert_order(
                conn,
                user_id=user_id,
                listing_id=listing_id,
                side=OrderSide.BUY,
                shares=shares,
                price_per_share=listing.price_per_share,
                amount=order_amount(shares, listing.price_per_share),
                status=OrderStatus.PENDING,
                changed_by=user_id,
                reservation_id=reservation.id,
                payment_method_id=payment_method_id,
                notes=notes,
            )
        logger.info(
            "Order %s: %s buying %d shares of %s for %s",
            order.id,
            user_id,
            shares,
            listing_id,
            order.amount,
        )
        with self._order_locks.hold(order.id):
            return self._charge_and_settle(order, changed_by=user_id)

    def _submit_sell(
        self,
        user_id: str,
        listing_id: str,
        shares: int,
        payment_method_id: str | None,
        notes: str | None,
    ) -> Order:
        with self._holding_locks.hold(_holding_key(user_id, listing_id)):
            with connection_scope(write=True) as conn:
                listing = listings_repo.get_listing(conn, listing_id)
                amount = order_amount(shares, listing.price_per_share)
                order = orders_repo.insert_order(
                    conn,
                    user_id=user_id,
                    listing_id=listing_id,
                    side=OrderSide.SELL,
                    shares=shares,
                    price_per_share=listing.price_per_share,
                    amount=amount,
                    status=OrderStatus.PENDING,
                    changed_by=user_id,
                    payment_method_id=payment_method_id,
                    notes=notes,
                )
                basis = holdings_repo.apply_sell(conn, user_id, listing_id, shares)
                listings_repo.restock(conn, listing_id, shares)
                journal_repo.append_pair(
                    conn,
                    order_id=order.id,
                    kind="sale",
                    debit_account=listing_account(listing_id),
                    credit_account=user_account(user_id),
                    amount=amount,
                    memo=f"sell {shares} @ {listing.price_per_share}",
                )
                order = orders_repo.transition(
                    conn,
                    order.id,
                    OrderStatus.PENDING,
                    OrderStatus.COMPLETED,
                    changed_by=user_id,
                    cost_basis=basis,
                    completed_at=utc_now_iso(),
                )
        logger.info(
            "Order %s: %s sold %d shares of %s for %s",
            order.id,
            user_id,
            shares,
            listing_id,
            amount,
        )
        return order

    # ── Charge and settlement ─────────────────────────────────────────────────

    def _charge_with_retries(self, order: Order) -> ChargeResult:
        """Charge ``order``, retrying retryable failures with the same key."""
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return self.gateway.charge(order.user_id, order.amount, order.idempotency_key)
            except PaymentFailed as exc:
                if not exc.retryable or attempt == attempts:
                    raise
                logger.warning(
                    "Order %s: charge attempt %d/%d failed (%s), retrying",
                    order.id,
                    attempt,
                    attempts,
                    exc,
                )
        raise AssertionError("unreachable")

    def _charge_and_settle(self, order: Order, *, changed_by: str) -> Order:
        try:
            result = self._charge_with_retries(order)
        except PaymentFailed as exc:
            logger.warning("Order %s: charge failed: %s", order.id, exc)
            return self._fail_pending(order, str(exc), changed_by=changed_by)

        if not result.success or not result.payment_ref:
            reason = result.error or REASON_PAYMENT_DECLINED
            logger.info("Order %s: charge declined: %s", order.id, reason)
            return self._fail_pending(order, reason, changed_by=changed_by)
        return self._settle_buy(order, result.payment_ref, changed_by=changed_by)

    def _settle_buy(
        self,
        order: Order,
        payment_ref: str,
        *,
        changed_by: str,
        notes: str | None = None,
    ) -> Order:
        """Book a charged buy, or refund the charge if the order cannot complete."""
        if order.side is not OrderSide.BUY:
            raise ValidationError("Only buy orders settle against a charge")

        with connection_scope(write=True) as conn:
            current = orders_repo.get_order(conn, order.id)
            if current.status is not OrderStatus.PENDING:
                # Cancelled or swept while the charge was in flight.
                outcome = current
            else:
                reservation_id = self._consume_reservation(conn, current)
                if reservation_id is None:
                    outcome = self._mark_failed(
                        conn,
                        current,
                        REASON_RESERVATION_EXPIRED,
                        changed_by=changed_by,
                        payment_ref=payment_ref,
                    )
                else:
                    journal_repo.append_pair(
                        conn,
                        order_id=current.id,
                        kind="purchase",
                        debit_account=user_account(current.user_id),
                        credit_account=listing_account(current.listing_id),
                        amount=current.amount,
                        memo=f"buy {current.shares} @ {current.price_per_share}",
                    )
                    holdings_repo.apply_buy(
                        conn,
                        current.user_id,
                        current.listing_id,
                        current.shares,
                        current.price_per_share,
                    )
                    completed = orders_repo.transition(
                        conn,
                        current.id,
                        OrderStatus.PENDING,
                        OrderStatus.COMPLETED,
                        changed_by=changed_by,
                        notes=notes,
                        payment_ref=payment_ref,
                        reservation_id=reservation_id,
                        completed_at=utc_now_iso(),
                    )
                    logger.info("Order %s completed (payment %s)", completed.id, payment_ref)
                    return completed

        logger.warning(
            "Order %s is %s after a successful charge; refunding %s",
            outcome.id,
            outcome.status.value,
            payment_ref,
        )
        self._refund_or_raise(outcome, payment_ref)
        return outcome

    def _consume_reservation(self, conn: sqlite3.Connection, order: Order) -> str | None:
        """Commit the order's reservation, re-taking the shares if it lapsed.

        Returns the id of the committed reservation, or ``None`` when the
        shares are no longer available.
        """
        if order.reservation_id is not None:
            try:
                listings_repo.commit(conn, order.reservation_id)
                return order.reservation_id
            except ReservationExpired:
                logger.info("Order %s: reservation lapsed, re-reserving", order.id)
        try:
            replacement = listings_repo.reserve(
                conn,
                order.listing_id,
                order.shares,
                ttl_seconds=self.reservation_ttl_seconds,
                now=self._clock(),
            )
        except (InsufficientInventory, ListingNotActive) as exc:
            logger.warning("Order %s: cannot re-reserve shares: %s", order.id, exc)
            return None
        listings_repo.commit(conn, replacement.id)
        return replacement.id

    def _refund_or_raise(self, order: Order, payment_ref: str) -> None:
        result = self.gateway.refund(payment_ref, order.amount)
        if not result.success:
            logger.error(
                "Refund of %s for order %s was declined: %s", payment_ref, order.id, result.error
            )
            raise PaymentFailed(f"Refund of {payment_ref} declined: {result.error}")

    def _mark_failed(
        self,
        conn: sqlite3.Connection,
        order: Order,
        reason: str,
        *,
        changed_by: str,
        notes: str | None = None,
        payment_ref: str | None = None,
    ) -> Order:
        """Journal a failed attempt and move a PENDING order to FAILED."""
        journal_repo.append(
            conn,
            order_id=order.id,
            kind="payment_failed",
            account=user_account(order.user_id),
            direction=DEBIT,
            amount=ZERO,
            memo=reason[:200],
        )
        columns: dict[str, object] = {"failure_reason": reason}
        if payment_ref is not None:
            columns["payment_ref"] = payment_ref
        failed = orders_repo.transition(
            conn,
            order.id,
            OrderStatus.PENDING,
            OrderStatus.FAILED,
            changed_by=changed_by,
            notes=notes,
            **columns,
        )
        logger.info("Order %s failed: %s", failed.id, reason)
        return failed

    def _fail_pending(
        self,
        order: Order,
        reason: str,
        *,
        changed_by: str,
        notes: str | None = None,
    ) -> Order:
        with connection_scope(write=True) as conn:
            current = orders_repo.get_order(conn, order.id)
            if current.status is not OrderStatus.PENDING:
                return current
            if current.reservation_id is not None:
                try:
                    listings_repo.release(conn, current.reservation_id)
                except ReservationExpired:
                    logger.debug("Order %s: reservation already resolved", current.id)
            return self._mark_failed(conn, current, reason, changed_by=changed_by, notes=notes)

    # ── Cancellation and retry ────────────────────────────────────────────────

    def _load_owned(self, order_id: str, actor: Actor) -> Order:
        with connection_scope() as conn:
            order = orders_repo.get_order(conn, order_id)
        if not actor.may_act_for(order.user_id):
            raise PermissionDenied(f"{actor.user_id!r} may not act on order {order_id!r}")
        return order

    def cancel_order(self, order_id: str, actor: Actor, *, notes: str | None = None) -> Order:
        """Cancel an order and undo whatever it already did.

        Cancelling an order that is already ``CANCELLED`` returns it
        unchanged. A ``FAILED`` order cannot be cancelled.

        Raises:
            InvalidStateTransition: The order is ``FAILED``.
            InsufficientHoldings: The bought shares were already sold on.
            PaymentFailed: The refund of a completed buy did not go through;
                nothing was changed.
        """
        with self._order_locks.hold(order_id):
            order = self._load_owned(order_id, actor)
            if order.status is OrderStatus.CANCELLED:
                return order
            ensure_transition(order.status, OrderStatus.CANCELLED, order_id=order_id)

            if order.status is OrderStatus.PENDING:
                cancelled = self._cancel_pending(order, actor, notes)
            elif order.side is OrderSide.BUY:
                cancelled = self._reverse_buy(order, actor, notes)
            else:
                cancelled = self._reverse_sell(order, actor, notes)
        logger.info("Order %s cancelled by %s", order_id, actor.user_id)
        return cancelled

    def _cancel_pending(self, order: Order, actor: Actor, notes: str | None) -> Order:
        with connection_scope(write=True) as conn:
            if order.reservation_id is not None:
                try:
                    listings_repo.release(conn, order.reservation_id)
                except ReservationExpired:
                    logger.debug("Order %s: reservation already resolved", order.id)
            return orders_repo.transition(
                conn,
                order.id,
                OrderStatus.PENDING,
                OrderStatus.CANCELLED,
                changed_by=actor.user_id,
                notes=notes,
                cancelled_at=utc_now_iso(),
            )

    def _reverse_buy(self, order: Order, actor: Actor, notes: str | None) -> Order:
        with self._holding_locks.hold(_holding_key(order.user_id, order.listing_id)):
            with connection_scope() as conn:
                holding = holdings_repo.find_holding(conn, order.user_id, order.listing_id)
            held = holding.share_quantity if holding else 0
            if held < order.shares:
                raise InsufficientHoldings(order.user_id, order.listing_id, order.shares, held)

            if order.payment_ref:
                self._refund_or_raise(order, order.payment_ref)

            try:
                with connection_scope(write=True) as conn:
                    listings_repo.restock(conn, order.listing_id, order.shares)
                    holdings_repo.reverse_buy(conn, order.user_id, order.listing_id, order.shares)
                    journal_repo.append_pair(
                        conn,
                        order_id=order.id,
                        kind="refund",
                        debit_account=listing_account(order.listing_id),
                        credit_account=user_account(order.user_id),
                        amount=order.amount,
                        memo=f"refund {order.shares} @ {order.price_per_share}",
                    )
                    return orders_repo.transition(
                        conn,
                        order.id,
                        OrderStatus.COMPLETED,
                        OrderStatus.CANCELLED,
                        changed_by=actor.user_id,
                        notes=notes,
                        cancelled_at=utc_now_iso(),
                    )
            except Exception:
                logger.error(
                    "Order %s: refund %s was issued but the reversal did not commit",
                    order.id,
                    order.payment_ref,
                )
                raise

    def _reverse_sell(self, order: Order, actor: Actor, notes: str | None) -> Order:
        basis = order.cost_basis if order.cost_basis is not None else order.price_per_share
        with self._holding_locks.hold(_holding_key(order.user_id, order.listing_id)):
            with connection_scope(write=True) as conn:
                listings_repo.take(conn, order.listing_id, order.shares)
                holdings_repo.apply_buy(conn, order.user_id, order.listing_id, order.shares, basis)
                journal_repo.append_pair(
                    conn,
                    order_id=order.id,
                    kind="sale_reversal",
                    debit_account=user_account(order.user_id),
                    credit_account=listing_account(order.listing_id),
                    amount=order.amount,
                    memo=f"reverse sale of {order.shares} @ {order.price_per_share}",
                )
                return orders_repo.transition(
                    conn,
                    order.id,
                    OrderStatus.COMPLETED,
                    OrderStatus.CANCELLED,
                    changed_by=actor.user_id,
                    notes=notes,
                    cancelled_at=utc_now_iso(),
                )

    def retry_order(self, order_id: str, actor: Actor, *, notes: str | None = None) -> Order:
        """Re-attempt a ``FAILED`` buy with its original idempotency key.

        The shares are reserved again first; if they are gone the order
        stays ``FAILED`` and :class:`InsufficientInventory` propagates.
        """
        with self._order_locks.hold(order_id):
            order = self._load_owned(order_id, actor)
            ensure_transition(order.status, OrderStatus.PENDING, order_id=order_id)
            with connection_scope(write=True) as conn:
                reservation = listings_repo.reserve(
                    conn,
                    order.listing_id,
                    order.shares,
                    ttl_seconds=self.reservation_ttl_seconds,
                    now=self._clock(),
                )
                order = orders_repo.transition(
                    conn,
                    order.id,
                    OrderStatus.FAILED,
                    OrderStatus.PENDING,
                    changed_by=actor.user_id,
                    notes=notes,
                    reservation_id=reservation.id,
                    failure_reason=None,
                )
            logger.info("Order %s retried by %s", order_id, actor.user_id)
            return self._charge_and_settle(order, changed_by=actor.user_id)

    def update_order_status(
        self,
        order_id: str,
        status: OrderStatus | str,
        actor: Actor,
        *,
        notes: str | None = None,
        payment_ref: str | None = None,
    ) -> Order:
        """Administrative status change, routed through the normal paths.

        - ``cancelled``: the cancellation path, compensation included.
        - ``pending``: the retry path (``FAILED`` orders only).
        - ``failed``: releases the reservation of a ``PENDING`` order.
        - ``completed``: settles a ``PENDING`` buy that was paid out of band;
          ``payment_ref`` is required.
        """
        if not actor.is_admin:
            raise PermissionDenied("Only administrators may set order status directly")
        try:
            target = OrderStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Unknown order status {status!r}") from exc

        if target is OrderStatus.CANCELLED:
            return self.cancel_order(order_id, actor, notes=notes)
        if target is OrderStatus.PENDING:
            return self.retry_order(order_id, actor, notes=notes)

        with self._order_locks.hold(order_id):
            order = self._load_owned(order_id, actor)
            ensure_transition(order.status, target, order_id=order_id)
            if target is OrderStatus.FAILED:
                return self._fail_pending(
                    order, notes or "failed by administrator", changed_by=actor.user_id, notes=notes
                )
            if not payment_ref or not payment_ref.strip():
                raise ValidationError("payment_ref is required to complete an order manually")
            return self._settle_buy(
                order, payment_ref.strip(), changed_by=actor.user_id, notes=notes
            )

    # ── Maintenance ───────────────────────────────────────────────────────────

    def expire_stale_reservations(self, now: datetime | None = None) -> list[Order]:
        """Release reservations past their TTL and fail their pending orders.

        Returns:
            The orders moved to ``FAILED`` by this sweep.
        """
        moment = now or self._clock()
        with connection_scope() as conn:
            expired = listings_repo.list_expired_reservations(
                conn, now=moment, limit=self.sweep_batch_size
            )

        failed: list[Order] = []
        for reservation in expired:
            with connection_scope() as conn:
                owner = orders_repo.find_by_reservation(conn, reservation.id)
            lock_key = owner.id if owner else reservation.id
            with self._order_locks.hold(lock_key):
                with connection_scope(write=True) as conn:
                    try:
                        listings_repo.release(conn, reservation.id, now=moment)
                    except ReservationExpired:
                        # Resolved by its order since the listing query.
                        continue
                    if owner is None:
                        continue
                    current = orders_repo.get_order(conn, owner.id)
                    if (
                        current.status is OrderStatus.PENDING
                        and current.reservation_id == reservation.id
                    ):
                        failed.append(
                            self._mark_failed(
                                conn,
                                current,
                                REASON_RESERVATION_EXPIRED,
                                changed_by=SYSTEM_ACTOR.user_id,
                            )
                        )
        if expired:
            logger.info(
                "Reservation sweep: %d expired reservations, %d orders failed",
                len(expired),
                len(failed),
            )
        return failed

    def verify_journal(
        self,
        from_seq: int | None = None,
        to_seq: int | None = None,
    ) -> VerificationResult:
        """Check the journal hash chain and halt appends on a mismatch."""
        with connection_scope() as conn:
            result = journal_repo.verify(conn, from_seq, to_seq)
        if not result.ok and result.first_mismatch_seq is not None:
            logger.critical(
                "Journal tamper detected at sequence %d: %s",
                result.first_mismatch_seq,
                result.detail,
            )
            with connection_scope(write=True) as conn:
                journal_repo.record_halt(conn, result.first_mismatch_seq, result.detail)
        return result

    def journal_halt(self) -> JournalHalt | None:
        with connection_scope() as conn:
            return journal_repo.get_halt(conn)

    def clear_journal_halt(self, actor: Actor) -> bool:
        """Resume journal appends after an audit. Administrators only."""
        if not actor.is_admin:
            raise PermissionDenied("Only administrators may clear a journal halt")
        with connection_scope(write=True) as conn:
            cleared = journal_repo.clear_halt(conn)
        if cleared:
            logger.warning("Journal halt cleared by %s", actor.user_id)
        return cleared

    # ── Reads ─────────────────────────────────────────────────────────────────

    def get_order(self, order_id: str, actor: Actor) -> Order:
        return self._load_owned(order_id, actor)

    def get_order_history(self, order_id: str, actor: Actor) -> list[OrderHistoryEntry]:
        self._load_owned(order_id, actor)
        with connection_scope() as conn:
            return orders_repo.get_history(conn, order_id)

    def get_order_journal(self, order_id: str, actor: Actor) -> list[JournalEntry]:
        """Journal entries of one order, oldest first."""
        self._load_owned(order_id, actor)
        with connection_scope() as conn:
            entries = journal_repo.list_entries(conn, order_id=order_id, limit=200)
        return list(reversed(entries))

    def list_orders(
        self,
        actor: Actor,
        *,
        user_id: str | None = None,
        listing_id: str | None = None,
        status: OrderStatus | str | None = None,
        side: OrderSide | str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Order], int]:
        """Page through orders. Investors only ever see their own."""
        if not actor.is_admin:
            if user_id is not None and user_id != actor.user_id:
                raise PermissionDenied("Investors may only list their own orders")
            user_id = actor.user_id
        try:
            status = OrderStatus(status) if status is not None else None
            side = OrderSide(side) if side is not None else None
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        with connection_scope() as conn:
            return orders_repo.list_orders(
                conn,
                user_id=user_id,
                listing_id=listing_id,
                status=status,
                side=side,
                page=page,
                limit=limit,
            )

    def get_holding(self, user_id: str, listing_id: str) -> Holding:
        with connection_scope() as conn:
            return holdings_repo.get_holding(conn, user_id, listing_id)

    def list_holdings(self, user_id: str) -> list[Holding]:
        with connection_scope() as conn:
            return holdings_repo.list_holdings(conn, user_id)

    def list_transactions(
        self, user_id: str, *, page: int = 1, limit: int = 20
    ) -> list[JournalEntry]:
        """Journal entries posted to the user's account, newest first."""
        with connection_scope() as conn:
            return journal_repo.list_entries(
                conn, account=user_account(user_id), page=page, limit=limit
            )

    def portfolio_summary(self, user_id: str) -> PortfolioSummary:
        """Value a user's holdings at each listing's current share price."""
        total_invested = ZERO
        portfolio_value = ZERO
        with connection_scope() as conn:
            holdings = holdings_repo.list_holdings(conn, user_id)
            for holding in holdings:
                listing = listings_repo.get_listing(conn, holding.listing_id)
                total_invested += Decimal(holding.share_quantity) * holding.average_cost_basis
                portfolio_value += Decimal(holding.share_quantity) * listing.price_per_share
        total_invested = to_money(total_invested)
        portfolio_value = to_money(portfolio_value)
        return PortfolioSummary(
            user_id=user_id,
            total_invested=total_invested,
            portfolio_value=portfolio_value,
            total_returns=to_money(portfolio_value - total_invested),
            active_positions=len(holdings),
        )

    def list_listings(self, status: str | None = None) -> list[Listing]:
        with connection_scope() as conn:
            return listings_repo.list_listings(conn, status=status)

    def get_listing(self, listing_id: str) -> Listing:
        with connection_scope() as conn:
            return listings_repo.get_listing(conn, listing_id)
