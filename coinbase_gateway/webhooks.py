import hashlib
import hmac
import json
import logging
from pydantic import ValidationError

from coinbase_gateway.exceptions import DuplicateSettlement, PayloadMalformed, SignatureInvalid
from coinbase_gateway.schemas import WebhookPayload

logger = logging.getLogger(__name__)


def verify_signature(raw_body: bytes, signature, secret) -> bool:
    if not signature or not secret:
        return False

    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    # bytes, so a non-ASCII header is a mismatch rather than a TypeError
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8", "surrogateescape"))


class WebhookReconciler:
    def __init__(self, config, store):
        self.config = config
        self.store = store
        self.handlers = {
            "charge:created": self.handle_charge_created,
            "charge:pending": self.handle_charge_pending,
            "charge:failed": self.handle_charge_failed,
            "charge:confirmed": self.handle_charge_confirmed,
        }

    def handle(self, raw_body: bytes, signature) -> dict:
        if not verify_signature(raw_body, signature, self.config.webhook_secret):
            logger.error(
                f"Coinbase Commerce webhook: invalid signature "
                f"(signature={signature!r}, payload_length={len(raw_body)})"
            )
            raise SignatureInvalid("Invalid signature")

        try:
            payload = WebhookPayload.model_validate(json.loads(raw_body))
        except (ValueError, ValidationError) as e:
            logger.error(f"Coinbase Commerce webhook: invalid JSON ({e})")
            raise PayloadMalformed("Invalid JSON") from e

        event = payload.event
        logger.info(
            f"Coinbase Commerce webhook received: event_type={event.type or 'unknown'} "
            f"charge_id={event.data.id or 'unknown'}"
        )

        self.process_event(event)
        return {"success": True}

    def process_event(self, event):
        charge = event.data
        invoice = self.store.find_invoice_by_charge_id(charge.id)

        if not invoice:
            logger.warning(
                f"Coinbase Commerce webhook: invoice not found "
                f"(charge_id={charge.id}, event_type={event.type})"
            )
            return

        logger.info(
            f"Coinbase Commerce webhook: processing event_type={event.type} "
            f"charge_id={charge.id} invoice_id={invoice.id}"
        )

        handler = self.handlers.get(event.type)
        if handler is None:
            logger.info(
                f"Coinbase Commerce webhook: unhandled event_type={event.type} charge_id={charge.id}"
            )
            return

        handler(invoice, charge)

    def handle_charge_created(self, invoice, charge):
        logger.info(f"Coinbase Commerce: charge {charge.id} created for invoice {invoice.id}")

    def handle_charge_pending(self, invoice, charge):
        logger.info(f"Coinbase Commerce: charge {charge.id} pending for invoice {invoice.id}")

        if invoice.status == "pending":
            self.store.update_invoice_status(invoice, "pending")

    def handle_charge_failed(self, invoice, charge):
        logger.warning(
            f"Coinbase Commerce: charge {charge.id} failed for invoice {invoice.id} "
            f"(failure_reason={charge.failure_reason or 'unknown'})"
        )

        if invoice.status == "pending":
            self.store.update_invoice_status(invoice, "pending")

    def handle_charge_confirmed(self, invoice, charge):
        if self.store.find_linkage(invoice.id, charge.id, settled=True):
            logger.info(
                f"Coinbase Commerce: payment already processed "
                f"(invoice_id={invoice.id}, charge_id={charge.id})"
            )
            return

        amount = charge.pricing.local.amount
        currency = charge.pricing.local.currency

        try:
            placeholder = self.store.find_linkage(invoice.id, charge.id, settled=False)
            if placeholder:
                self.store.promote_linkage_to_settled(placeholder, amount)
            else:
                self.store.create_settled_payment(invoice.id, charge.id, amount, fee=None)
        except DuplicateSettlement:
            logger.info(
                f"Coinbase Commerce: concurrent confirmation already settled "
                f"(invoice_id={invoice.id}, charge_id={charge.id})"
            )
            return

        logger.info(
            f"Coinbase Commerce: payment confirmed (invoice_id={invoice.id}, "
            f"charge_id={charge.id}, amount={amount}, currency={currency})"
        )

        if invoice.status == "pending" and self.store.settled_total(invoice.id) >= invoice.total:
            self.store.update_invoice_status(invoice, "paid")
            logger.info(f"Coinbase Commerce: invoice {invoice.id} paid in full")
