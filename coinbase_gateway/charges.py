import logging
from coinbase_gateway.exceptions import PaymentInitiationError, RemoteApiError
from coinbase_gateway.schemas import format_amount

logger = logging.getLogger(__name__)

COMPLETED = "COMPLETED"


class ChargeInitiator:
    """Turns an invoice into a Coinbase Commerce hosted payment URL.

    A charge created for the same invoice within the reuse window is handed
    back again as long as it is not completed and still asks for the same
    amount, so a payer reopening the invoice does not pile up charges.
    """

    def __init__(self, config, client, store):
        self.config = config
        self.client = client
        self.store = store

    def pay(self, invoice, total) -> str:
        try:
            reused = self._reusable_charge_url(invoice, total)
            if reused:
                return reused

            return self._create_charge(invoice, total)
        except Exception as e:
            logger.error(f"Coinbase Commerce payment error for invoice {invoice.id}: {e}")
            raise PaymentInitiationError(f"Payment processing failed: {e}") from e

    def _reusable_charge_url(self, invoice, total):
        reuse_hours = self.config.charge_reuse_hours
        recent = self.store.find_recent_linkage(invoice.id, reuse_hours)
        if not recent:
            return None

        try:
            charge = self.client.get_charge(recent.transaction_id)
        except RemoteApiError as e:
            logger.warning(
                f"Coinbase Commerce: failed to check existing charge {recent.transaction_id} "
                f"for invoice {invoice.id}, creating new one: {e}"
            )
            return None

        latest_status = charge.latest_status
        charge_amount = format_amount(charge.pricing.local.amount)
        current_total = format_amount(total)

        if latest_status != COMPLETED and charge_amount == current_total:
            logger.info(
                f"Coinbase Commerce: reusing charge {charge.id} for invoice {invoice.id} "
                f"(status={latest_status}, amount={charge_amount}, window={reuse_hours}h)"
            )
            return charge.hosted_url

        reason = "completed" if latest_status == COMPLETED else "amount_mismatch"
        logger.info(
            f"Coinbase Commerce: charge {charge.id} not reusable for invoice {invoice.id} "
            f"(reason={reason}, status={latest_status}, charge_amount={charge_amount}, "
            f"current_total={current_total})"
        )
        return None

    def _create_charge(self, invoice, total) -> str:
        invoice_url = self.config.invoice_url(invoice.id)
        payload = {
            "name": f"Invoice #{invoice.id}",
            "description": f"Payment for invoice #{invoice.id}",
            "pricing_type": "fixed_price",
            "local_price": {
                "amount": format_amount(total),
                "currency": invoice.currency_code or "USD",
            },
            "metadata": {
                "invoice_id": invoice.id,
                "user_id": invoice.user_id,
                "total": format_amount(total),
            },
            "redirect_url": invoice_url,
            "cancel_url": invoice_url,
        }

        try:
            charge = self.client.create_charge(payload)
        except RemoteApiError as e:
            logger.error(
                f"Coinbase Commerce charge creation failed for invoice {invoice.id} "
                f"(status={e.status_code}): {e.body}"
            )
            raise RemoteApiError(
                f"Failed to create payment charge: {e.body or e}",
                status_code=e.status_code,
                body=e.body,
            ) from e

        # Placeholder row so the webhook can find the invoice from the charge id
        self.store.create_placeholder_linkage(invoice.id, charge.id)
        logger.info(f"Coinbase Commerce: created charge {charge.id} for invoice {invoice.id}")

        return charge.hosted_url
