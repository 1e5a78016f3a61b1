import logging
from functools import lru_cache
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from coinbase_gateway.auth import verify_token
from coinbase_gateway.charges import ChargeInitiator
from coinbase_gateway.coinbase_service import CoinbaseCommerceClient
from coinbase_gateway.config import GatewayConfig, load_config
from coinbase_gateway.database import get_db
from coinbase_gateway.exceptions import (
    InvoiceNotFound,
    PayloadMalformed,
    PaymentInitiationError,
    SignatureInvalid,
)
from coinbase_gateway.persistence import InvoiceStore
from coinbase_gateway.schemas import PaymentRequest
from coinbase_gateway.webhooks import WebhookReconciler

logger = logging.getLogger(__name__)

router = APIRouter()


@lru_cache
def get_config() -> GatewayConfig:
    return load_config()


def get_client(config: GatewayConfig = Depends(get_config)):
    return CoinbaseCommerceClient(config)


@router.post("/invoices/{invoice_id}/pay")
def pay_invoice(
    invoice_id: int,
    request: Optional[PaymentRequest] = None,
    db: Session = Depends(get_db),
    config: GatewayConfig = Depends(get_config),
    client: CoinbaseCommerceClient = Depends(get_client),
    auth=Depends(verify_token)
):
    store = InvoiceStore(db)

    try:
        invoice = store.get_invoice(invoice_id)
    except InvoiceNotFound:
        raise HTTPException(status_code=404, detail="Invoice not found")

    total = request.total if request and request.total is not None else invoice.total

    try:
        payment_url = ChargeInitiator(config, client, store).pay(invoice, total)
    except PaymentInitiationError:
        raise HTTPException(status_code=502, detail="Payment processing failed")

    return {"payment_url": payment_url}


# Server-to-server: no session, no CSRF token, authenticated by signature only.
@router.post(
    "/extensions/coinbasecommerce/webhook",
    name="extensions.gateways.coinbasecommerce.webhook",
)
async def coinbase_webhook(
    request: Request,
    x_cc_webhook_signature: str = Header(None),
    db: Session = Depends(get_db),
    config: GatewayConfig = Depends(get_config)
):
    payload = await request.body()
    reconciler = WebhookReconciler(config, InvoiceStore(db))

    try:
        return reconciler.handle(payload, x_cc_webhook_signature)
    except SignatureInvalid:
        return JSONResponse(status_code=400, content={"error": "Invalid signature"})
    except PayloadMalformed:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON"})
    except Exception:
        logger.exception(f"Coinbase Commerce webhook error (payload={payload!r})")
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})
