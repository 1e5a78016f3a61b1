import hashlib
import hmac
import pytest
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from coinbase_gateway.config import GatewayConfig
from coinbase_gateway.database import Base
from coinbase_gateway.exceptions import DuplicateSettlement, PayloadMalformed, SignatureInvalid
from coinbase_gateway.models import Invoice, InvoiceTransaction
from coinbase_gateway.persistence import InvoiceStore
from coinbase_gateway.schemas import Charge
from coinbase_gateway.webhooks import WebhookReconciler, verify_signature

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_webhooks.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db():
    session = TestingSessionLocal()
    session.add(Invoice(id=42, user_id=7, currency_code="USD",
                        total=Decimal("19.99"), status="pending"))
    session.commit()
    yield session
    session.close()


def confirmed_charge(charge_id="abc123", amount="19.99"):
    return Charge.model_validate({
        "id": charge_id,
        "pricing": {"local": {"amount": amount, "currency": "USD"}},
    })


def test_verify_signature():
    body = b'{"event": {"type": "charge:created"}}'
    signature = hmac.new(b"secret", body, hashlib.sha256).hexdigest()

    assert verify_signature(body, signature, "secret")
    assert not verify_signature(body, signature.upper(), "secret")
    assert not verify_signature(body + b" ", signature, "secret")
    assert not verify_signature(body, signature, "other")
    assert not verify_signature(body, None, "secret")
    assert not verify_signature(body, signature, "")
    assert not verify_signature(body, "é" * 64, "secret")


def test_handle_rejects_bad_signature_before_parsing(mocker):
    store = mocker.Mock()
    reconciler = WebhookReconciler(GatewayConfig(webhook_secret="secret"), store)

    with pytest.raises(SignatureInvalid):
        reconciler.handle(b"not json", "bad")

    store.find_invoice_by_charge_id.assert_not_called()


@pytest.mark.parametrize("body", [b"not json", b"[1, 2]", b"null", b'{"event": "charge:confirmed"}'])
def test_handle_rejects_unusable_payload(mocker, body):
    reconciler = WebhookReconciler(GatewayConfig(webhook_secret="secret"), mocker.Mock())
    signature = hmac.new(b"secret", body, hashlib.sha256).hexdigest()

    with pytest.raises(PayloadMalformed):
        reconciler.handle(body, signature)


def test_confirmed_without_placeholder_creates_settled_payment(mocker):
    store = mocker.Mock()
    store.find_linkage.return_value = None
    store.settled_total.return_value = Decimal("19.99")
    invoice = mocker.Mock(id=42, status="pending", total=Decimal("19.99"))

    WebhookReconciler(GatewayConfig(), store).handle_charge_confirmed(invoice, confirmed_charge())

    store.create_settled_payment.assert_called_once_with(42, "abc123", Decimal("19.99"), fee=None)
    store.promote_linkage_to_settled.assert_not_called()
    store.update_invoice_status.assert_called_once_with(invoice, "paid")


def test_partial_payment_leaves_invoice_pending(mocker):
    store = mocker.Mock()
    store.find_linkage.side_effect = [None, mocker.Mock()]
    store.settled_total.return_value = Decimal("10.00")
    invoice = mocker.Mock(id=42, status="pending", total=Decimal("19.99"))

    WebhookReconciler(GatewayConfig(), store).handle_charge_confirmed(
        invoice, confirmed_charge(amount="10.00"))

    store.promote_linkage_to_settled.assert_called_once()
    store.update_invoice_status.assert_not_called()


def test_concurrent_duplicate_settlement_is_acknowledged(mocker):
    store = mocker.Mock()
    store.find_linkage.return_value = None
    store.create_settled_payment.side_effect = DuplicateSettlement("UNIQUE constraint failed")
    invoice = mocker.Mock(id=42, status="pending", total=Decimal("19.99"))

    WebhookReconciler(GatewayConfig(), store).handle_charge_confirmed(invoice, confirmed_charge())

    store.update_invoice_status.assert_not_called()


def test_unique_index_blocks_second_settled_row(db):
    store = InvoiceStore(db)
    store.create_settled_payment(42, "abc123", Decimal("19.99"))

    with pytest.raises(DuplicateSettlement):
        store.create_settled_payment(42, "abc123", Decimal("19.99"))

    assert db.query(InvoiceTransaction).count() == 1


def test_placeholders_are_not_unique(db):
    store = InvoiceStore(db)
    store.create_placeholder_linkage(42, "abc123")
    store.create_placeholder_linkage(42, "abc123")

    assert db.query(InvoiceTransaction).count() == 2


def test_find_invoice_by_charge_id(db):
    store = InvoiceStore(db)
    store.create_placeholder_linkage(42, "abc123")

    assert store.find_invoice_by_charge_id("abc123").id == 42
    assert store.find_invoice_by_charge_id("missing") is None
    assert store.find_invoice_by_charge_id("") is None
