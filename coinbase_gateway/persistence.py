from datetime import timedelta
from decimal import Decimal
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from coinbase_gateway.exceptions import DuplicateSettlement, InvoiceNotFound
from coinbase_gateway.models import Gateway, Invoice, InvoiceTransaction, utcnow

GATEWAY_EXTENSION = "CoinbaseCommerce"
GATEWAY_NAME = "Coinbase Commerce"


class InvoiceStore:
    """Reads and writes invoices and their charge linkage rows.

    Every write commits immediately; a request never leaves half-written
    state behind in the session.
    """

    def __init__(self, db):
        self.db = db

    def get_invoice(self, invoice_id):
        invoice = self.db.get(Invoice, invoice_id)
        if invoice is None:
            raise InvoiceNotFound(f"Invoice {invoice_id} not found")
        return invoice

    def find_recent_linkage(self, invoice_id, hours):
        if not hours or hours <= 0:
            return None

        since = utcnow() - timedelta(hours=hours)
        return (
            self.db.query(InvoiceTransaction)
            .filter(
                InvoiceTransaction.invoice_id == invoice_id,
                InvoiceTransaction.transaction_id.isnot(None),
                InvoiceTransaction.created_at >= since,
            )
            .order_by(InvoiceTransaction.created_at.desc(), InvoiceTransaction.id.desc())
            .first()
        )

    def find_invoice_by_charge_id(self, charge_id):
        if not charge_id:
            return None

        return (
            self.db.query(Invoice)
            .join(InvoiceTransaction)
            .filter(InvoiceTransaction.transaction_id == charge_id)
            .first()
        )

    def find_linkage(self, invoice_id, charge_id, settled: bool):
        query = self.db.query(InvoiceTransaction).filter_by(
            invoice_id=invoice_id, transaction_id=charge_id
        )
        if settled:
            query = query.filter(InvoiceTransaction.amount > 0)
        else:
            query = query.filter(InvoiceTransaction.amount == 0)
        return query.first()

    def coinbase_gateway_id(self):
        gateway = self.db.query(Gateway).filter_by(extension=GATEWAY_EXTENSION).first()
        return gateway.id if gateway else None

    def create_placeholder_linkage(self, invoice_id, charge_id):
        linkage = InvoiceTransaction(
            invoice_id=invoice_id,
            gateway_id=None,
            amount=0,
            fee=None,
            transaction_id=charge_id
        )
        self.db.add(linkage)
        self.db.commit()
        return linkage

    def promote_linkage_to_settled(self, linkage, amount):
        linkage.amount = amount
        linkage.gateway_id = self.coinbase_gateway_id()
        self._commit_settlement()
        return linkage

    def create_settled_payment(self, invoice_id, charge_id, amount, fee=None):
        payment = InvoiceTransaction(
            invoice_id=invoice_id,
            gateway_id=self.coinbase_gateway_id(),
            amount=amount,
            fee=fee,
            transaction_id=charge_id
        )
        self.db.add(payment)
        self._commit_settlement()
        return payment

    def settled_total(self, invoice_id) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(InvoiceTransaction.amount), 0))
            .filter(InvoiceTransaction.invoice_id == invoice_id, InvoiceTransaction.amount > 0)
            .scalar()
        )
        return Decimal(str(total))

    def update_invoice_status(self, invoice, status):
        invoice.status = status
        self.db.commit()
        return invoice

    def _commit_settlement(self):
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateSettlement(str(e.orig)) from e
