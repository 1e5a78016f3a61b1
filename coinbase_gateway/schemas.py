from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

TWO_PLACES = Decimal("0.01")


def format_amount(value) -> str:
    """Format an amount the way Coinbase Commerce does: exactly two decimals."""
    return str(Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


class Money(BaseModel):
    amount: Decimal = Decimal("0")
    currency: str = "USD"

    @field_validator("amount", mode="before")
    @classmethod
    def null_amount(cls, value):
        return "0" if value is None else value

    @field_validator("currency", mode="before")
    @classmethod
    def null_currency(cls, value):
        return "USD" if value is None else value


class Pricing(BaseModel):
    local: Money = Field(default_factory=Money)

    @field_validator("local", mode="before")
    @classmethod
    def null_local(cls, value):
        return {} if value is None else value


class TimelineEntry(BaseModel):
    status: Optional[str] = None
    time: Optional[str] = None


class Charge(BaseModel):
    id: str = ""
    code: Optional[str] = None
    hosted_url: Optional[str] = None
    pricing: Pricing = Field(default_factory=Pricing)
    timeline: Optional[List[TimelineEntry]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    failure_reason: Optional[Any] = None

    @field_validator("id", mode="before")
    @classmethod
    def id_string(cls, value):
        return "" if value is None else str(value)

    @field_validator("pricing", "metadata", mode="before")
    @classmethod
    def object_or_empty(cls, value):
        return value if isinstance(value, dict) else {}

    @field_validator("timeline", mode="before")
    @classmethod
    def timeline_list(cls, value):
        # anything but a list means "no usable timeline"
        if not isinstance(value, list):
            return None
        return [entry if isinstance(entry, dict) else {} for entry in value]

    @property
    def latest_status(self) -> Optional[str]:
        if not self.timeline:
            return None
        return self.timeline[-1].status


class WebhookEvent(BaseModel):
    id: Optional[str] = None
    type: str = ""
    api_version: Optional[str] = None
    created_at: Optional[str] = None
    data: Charge = Field(default_factory=Charge)

    # null type is an unknown event, null data an unmatched charge
    @field_validator("type", mode="before")
    @classmethod
    def null_type(cls, value):
        return "" if value is None else value

    @field_validator("data", mode="before")
    @classmethod
    def null_data(cls, value):
        return {} if value is None else value


class WebhookPayload(BaseModel):
    id: Optional[Any] = None
    scheduled_for: Optional[str] = None
    event: WebhookEvent = Field(default_factory=WebhookEvent)

    @field_validator("event", mode="before")
    @classmethod
    def null_event(cls, value):
        return {} if value is None else value


class PaymentRequest(BaseModel):
    total: Optional[Decimal] = Field(default=None, gt=0)
