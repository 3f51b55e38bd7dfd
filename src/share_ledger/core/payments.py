"""Payment collaborator interface and implementations.

The order service never talks to a processor directly; it holds a
:class:`PaymentGateway`. Two implementations ship with the engine:

- :class:`SimulatedPaymentGateway` settles every charge in memory. It is the
  default for development and is idempotent per key like a real processor.
- :class:`HttpPaymentGateway` calls a remote processor with ``requests``.

Result contract
---------------
A processor that answers with a decline produces ``ChargeResult(success=False)``.
Transport problems (connection errors, timeouts, 5xx) raise
``PaymentFailed(retryable=True)`` so the service can retry the same
idempotency key. Unparseable answers raise ``PaymentFailed(retryable=False)``.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

import requests

from share_ledger.config import PaymentSettings
from share_ledger.core.errors import PaymentFailed
from share_ledger.core.money import money_str

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChargeResult:
    success: bool
    payment_ref: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class RefundResult:
    success: bool
    error: str | None = None


class PaymentGateway(Protocol):
    """Anything that can charge and refund a user."""

    def charge(self, user_id: str, amount: Decimal, idempotency_key: str) -> ChargeResult: ...

    def refund(self, payment_ref: str, amount: Decimal) -> RefundResult: ...


class SimulatedPaymentGateway:
    """In-memory gateway that accepts every charge.

    Repeating a charge with the same idempotency key returns the original
    payment reference without charging again; refunding a reference twice
    is a no-op success.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.charges: dict[str, tuple[str, Decimal]] = {}
        self.refunds: dict[str, Decimal] = {}

    def charge(self, user_id: str, amount: Decimal, idempotency_key: str) -> ChargeResult:
        with self._lock:
            existing = self.charges.get(idempotency_key)
            if existing is not None:
                return ChargeResult(success=True, payment_ref=existing[0])
            payment_ref = f"sim_{uuid.uuid4().hex}"
            self.charges[idempotency_key] = (payment_ref, Decimal(amount))
        logger.info("Simulated charge %s for user %s: %s", payment_ref, user_id, money_str(amount))
        return ChargeResult(success=True, payment_ref=payment_ref)

    def refund(self, payment_ref: str, amount: Decimal) -> RefundResult:
        with self._lock:
            self.refunds.setdefault(payment_ref, Decimal(amount))
        logger.info("Simulated refund of %s: %s", payment_ref, money_str(amount))
        return RefundResult(success=True)


class HttpPaymentGateway:
    """Client for a remote payment processor.

    Endpoints::

        POST {base_url}/charges  {"user_id", "amount"}       -> {"payment_ref"}
        POST {base_url}/refunds  {"payment_ref", "amount"}   -> {}

    Every request carries an ``Idempotency-Key`` header. Charges use the
    order's key; refunds use ``refund:<payment_ref>`` so a repeated refund of
    the same charge cannot pay out twice.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str = "",
        timeout_seconds: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.strip().rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def _headers(self, idempotency_key: str) -> dict[str, str]:
        headers = {"Idempotency-Key": idempotency_key}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _post(self, path: str, payload: dict[str, Any], idempotency_key: str) -> requests.Response:
        endpoint = f"{self.base_url}{path}"
        try:
            response = self.session.post(
                endpoint,
                json=payload,
                headers=self._headers(idempotency_key),
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.Timeout as exc:
            logger.warning("Payment processor timed out on %s: %s", path, exc)
            raise PaymentFailed(f"Payment processor timed out on {path}", retryable=True) from exc
        except requests.exceptions.RequestException as exc:
            logger.warning("Payment processor request to %s failed: %s", path, exc)
            raise PaymentFailed(f"Payment processor unavailable: {exc}", retryable=True) from exc

        if response.status_code >= 500:
            raise PaymentFailed(
                f"Payment processor returned HTTP {response.status_code}", retryable=True
            )
        return response

    @staticmethod
    def _body(response: requests.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise PaymentFailed("Payment processor returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise PaymentFailed("Payment processor returned a non-object payload")
        return body

    def charge(self, user_id: str, amount: Decimal, idempotency_key: str) -> ChargeResult:
        response = self._post(
            "/charges",
            {"user_id": user_id, "amount": money_str(amount)},
            idempotency_key,
        )
        body = self._body(response)
        if response.status_code >= 400:
            error = body.get("error") or f"HTTP {response.status_code}"
            return ChargeResult(success=False, error=str(error))
        payment_ref = body.get("payment_ref")
        if not isinstance(payment_ref, str) or not payment_ref:
            raise PaymentFailed("Payment processor did not return a payment reference")
        return ChargeResult(success=True, payment_ref=payment_ref)

    def refund(self, payment_ref: str, amount: Decimal) -> RefundResult:
        response = self._post(
            "/refunds",
            {"payment_ref": payment_ref, "amount": money_str(amount)},
            f"refund:{payment_ref}",
        )
        if response.status_code >= 400:
            body = self._body(response)
            error = body.get("error") or f"HTTP {response.status_code}"
            return RefundResult(success=False, error=str(error))
        return RefundResult(success=True)


def build_payment_gateway(settings: PaymentSettings) -> PaymentGateway:
    """Return the gateway selected by ``settings.mode``."""
    if settings.mode == "http":
        return HttpPaymentGateway(
            settings.gateway_url,
            api_key=settings.api_key,
            timeout_seconds=settings.timeout_seconds,
        )
    if settings.mode == "simulated":
        return SimulatedPaymentGateway()
    raise ValueError(f"Unknown payment mode {settings.mode!r}")
