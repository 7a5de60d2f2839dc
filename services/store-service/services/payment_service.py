"""Payment initialization, verification and webhook reconciliation."""
import hashlib
import hmac
import json
import logging
import secrets
import string
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session

from config import CHAPA_WEBHOOK_SECRET
from errors import AppError
from models import Order, User
from monitoring import payment_webhook_counter
from schemas import PaymentInitializeRequest
from services.order_service import OrderService, can_transition
from services.payment_gateway import ChapaClient

logger = logging.getLogger(__name__)

GATEWAY_STATUS_MAP = {
    "success": "paid",
    "successful": "paid",
    "failed": "failed",
}

# Orders are priced in birr
ORDER_CURRENCY = "ETB"

_TX_REF_ALPHABET = string.ascii_lowercase + string.digits


def generate_tx_ref() -> str:
    """habu_<epoch ms>_<9 lowercase alphanumerics>."""
    suffix = "".join(secrets.choice(_TX_REF_ALPHABET) for _ in range(9))
    return f"habu_{int(time.time() * 1000)}_{suffix}"


def _order_id_from_meta(meta: Any) -> Optional[int]:
    if isinstance(meta, str):
        try:
            meta = json.loads(meta)
        except ValueError:
            return None
    if not isinstance(meta, dict):
        return None
    try:
        return int(meta.get("order_id"))
    except (TypeError, ValueError):
        return None


def _to_decimal(value: Any) -> Optional[Decimal]:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def covers_order(order: Order, amount: Any, currency: Any) -> bool:
    """True when a gateway amount/currency pays the full order total."""
    paid = _to_decimal(amount)
    if paid is None or not paid.is_finite():
        return False
    if currency is not None and str(currency).upper() != ORDER_CURRENCY:
        return False
    return paid >= Decimal(order.total_amount)


class PaymentService:
    """Connects gateway payments to orders."""

    def __init__(
        self,
        gateway: ChapaClient,
        order_service: OrderService,
        webhook_secret: str = CHAPA_WEBHOOK_SECRET
    ):
        self.gateway = gateway
        self.order_service = order_service
        self.webhook_secret = webhook_secret

    async def initialize_payment(self, db: Session, user: User, request: PaymentInitializeRequest) -> Dict[str, Any]:
        """
        Start a hosted checkout.

        When meta.order_id names one of the caller's orders, the charge must be
        the order total in ETB, and the tx_ref is stored on the order so the
        webhook can find it later.

        Args:
            db: Database session
            user: Paying user
            request: Amount, customer and redirect details

        Returns:
            Gateway response plus the tx_ref used

        Raises:
            AppError: 404/403 for a foreign or unknown order, 400 if it is
                already paid or the amount does not match the order, or the
                gateway's own error status
        """
        payload = request.model_dump(exclude_none=True, mode="json")
        payload["amount"] = str(request.amount)
        tx_ref = payload.setdefault("tx_ref", generate_tx_ref())

        order_id = _order_id_from_meta(request.meta)
        if order_id is not None:
            order = db.query(Order).filter(Order.id == order_id).first()
            if order is None:
                raise AppError("Order not found", 404)
            if order.user_id != user.id:
                raise AppError("Access denied", 403)
            if order.payment_status == "paid":
                raise AppError("Order is already paid", 400)
            if request.currency.upper() != ORDER_CURRENCY or request.amount != Decimal(order.total_amount):
                raise AppError(
                    f"Payment amount must equal the order total of {order.total_amount} {ORDER_CURRENCY}", 400
                )
            try:
                order.payment_reference = tx_ref
                db.commit()
            except Exception:
                db.rollback()
                raise

        response = await self.gateway.initialize(payload)
        logger.info("Payment initialized", extra={
            "user_id": user.id,
            "order_id": order_id,
            "tx_ref": tx_ref,
            "amount": payload["amount"]
        })
        return {**response, "tx_ref": tx_ref}

    def _reconcile(
        self,
        db: Session,
        order: Order,
        transaction: Dict[str, Any],
        tx_ref: str,
        source: str
    ) -> str:
        """
        Apply a gateway transaction to an order.

        Returns:
            "applied", "duplicate" when already in that state, or "ignored"
            for unknown statuses, underpayments and moves the payment table
            does not allow
        """
        gateway_status = transaction.get("status")
        target = GATEWAY_STATUS_MAP.get(str(gateway_status or "").lower())
        if target is None:
            return "ignored"
        if order.payment_status == target:
            return "duplicate"
        if target == "paid" and not covers_order(order, transaction.get("amount"), transaction.get("currency")):
            logger.warning("Ignoring payment that does not cover the order", extra={
                "order_id": order.id,
                "order_total": str(order.total_amount),
                "amount": transaction.get("amount"),
                "currency": transaction.get("currency"),
                "source": source
            })
            return "ignored"
        if not can_transition("payment_status", order.payment_status, target):
            logger.warning("Ignoring gateway status for order", extra={
                "order_id": order.id,
                "payment_status": order.payment_status,
                "gateway_status": gateway_status,
                "source": source
            })
            return "ignored"
        self.order_service.update_payment_status(db, order.id, target, note=f"Chapa {source} {tx_ref}")
        return "applied"

    async def verify_payment(self, db: Session, tx_ref: str) -> Dict[str, Any]:
        """Ask the gateway for a transaction's status and reconcile the order."""
        response = await self.gateway.verify(tx_ref)
        data = response.get("data") or {}
        gateway_status = data.get("status")

        order = db.query(Order).filter(Order.payment_reference == tx_ref).first()
        outcome = "no_order"
        if order is not None:
            outcome = self._reconcile(db, order, data, tx_ref, "verify")
            db.refresh(order)

        logger.info("Payment verified", extra={
            "tx_ref": tx_ref,
            "gateway_status": gateway_status,
            "outcome": outcome
        })
        return {
            "tx_ref": tx_ref,
            "status": gateway_status,
            "order_id": order.id if order else None,
            "payment_status": order.payment_status if order else None,
            "outcome": outcome,
            "gateway": response,
        }

    def verify_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        """
        Check the HMAC-SHA256 signature of a webhook body.

        Returns:
            True when the body is signed with the configured secret, False
            when no secret is configured

        Raises:
            AppError: 401 when a secret is configured and the signature does not match
        """
        if not self.webhook_secret:
            return False
        expected = hmac.new(self.webhook_secret.encode(), raw_body, hashlib.sha256).hexdigest()
        if not signature or not hmac.compare_digest(expected, signature.strip().lower()):
            payment_webhook_counter.add(1, {"outcome": "bad_signature"})
            logger.warning("Rejected webhook with invalid signature")
            raise AppError("Invalid webhook signature", 401)
        return True

    async def handle_webhook(self, db: Session, raw_body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Reconcile an order from a gateway webhook.

        Signed events are applied as sent. Without a webhook secret the body
        is only used to find the order, and the status and amount come from
        the gateway's verify endpoint. Replays of an already applied event
        change nothing and still succeed.

        Raises:
            AppError: 401 for a bad signature, 400 for an unreadable body or a
                missing tx_ref, 404 when no order matches the tx_ref or
                meta.order_id, 409 when the order is bound to another tx_ref
        """
        signed = self.verify_signature(raw_body, signature)
        try:
            payload = json.loads(raw_body or b"{}")
        except ValueError:
            raise AppError("Invalid webhook payload", 400)
        if not isinstance(payload, dict):
            raise AppError("Invalid webhook payload", 400)

        tx_ref = payload.get("tx_ref") or payload.get("trx_ref")
        if not tx_ref:
            raise AppError("Webhook is missing tx_ref", 400)

        order = db.query(Order).filter(Order.payment_reference == tx_ref).first()
        if order is None:
            order_id = _order_id_from_meta(payload.get("meta"))
            if order_id is not None:
                order = db.query(Order).filter(Order.id == order_id).first()
        if order is None:
            payment_webhook_counter.add(1, {"outcome": "unknown_order"})
            logger.warning("Webhook for unknown order", extra={"tx_ref": tx_ref})
            raise AppError("Order not found for this transaction", 404)
        if order.payment_reference is not None and order.payment_reference != tx_ref:
            payment_webhook_counter.add(1, {"outcome": "tx_ref_mismatch"})
            logger.warning("Webhook tx_ref does not match order", extra={"order_id": order.id, "tx_ref": tx_ref})
            raise AppError("Transaction does not belong to this order", 409)

        transaction = payload
        if not signed:
            response = await self.gateway.verify(tx_ref)
            transaction = response.get("data") or {}

        if order.payment_reference is None:
            try:
                order.payment_reference = tx_ref
                db.commit()
            except Exception:
                db.rollback()
                raise

        outcome = self._reconcile(db, order, transaction, tx_ref, "webhook")
        db.refresh(order)
        payment_webhook_counter.add(1, {"outcome": outcome, "signed": str(signed).lower()})
        logger.info("Webhook processed", extra={
            "order_id": order.id,
            "tx_ref": tx_ref,
            "gateway_status": transaction.get("status"),
            "outcome": outcome
        })
        return {"order_id": order.id, "payment_status": order.payment_status, "outcome": outcome}
