from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String, text
from sqlalchemy.orm import relationship
from coinbase_gateway.database import Base


def utcnow():
    """Naive UTC timestamp; the DateTime columns store UTC without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, index=True)
    currency_code = Column(String, default="USD")
    total = Column(Numeric(12, 2), nullable=False)
    status = Column(String, default="pending")         # pending | paid | ... (host owned)
    created_at = Column(DateTime, default=utcnow)

    transactions = relationship("InvoiceTransaction", back_populates="invoice")


class Gateway(Base):
    __tablename__ = "gateways"

    id = Column(Integer, primary_key=True)
    name = Column(String)
    extension = Column(String, unique=True, index=True)


class InvoiceTransaction(Base):
    """Links an external charge id to an invoice.

    A row with amount 0 is a placeholder written when the charge is created;
    once the charge is confirmed the same row carries the settled amount.
    """

    __tablename__ = "invoice_transactions"

    id = Column(Integer, primary_key=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    gateway_id = Column(Integer, ForeignKey("gateways.id"), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    fee = Column(Numeric(12, 2), nullable=True)
    transaction_id = Column(String, index=True)         # Coinbase Commerce charge ID
    created_at = Column(DateTime, default=utcnow)

    invoice = relationship("Invoice", back_populates="transactions")

    __table_args__ = (
        # one settled payment per charge per invoice
        Index(
            "uq_invoice_transactions_settled_charge",
            "invoice_id",
            "transaction_id",
            unique=True,
            sqlite_where=text("amount > 0"),
            postgresql_where=text("amount > 0"),
        ),
    )
