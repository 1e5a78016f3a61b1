import logging
import os
from pathlib import Path
from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

logger = logging.getLogger(__name__)

# Operator-facing settings, in the order they are presented to the host.
CONFIG_FIELDS = [
    {"name": "api_key", "label": "API Key", "type": "text", "required": True},
    {"name": "webhook_secret", "label": "Webhook Secret", "type": "text", "required": True},
    {"name": "test_mode", "label": "Test Mode", "type": "checkbox", "required": False},
    {
        "name": "charge_reuse_hours",
        "label": "Charge Reuse Window (Hours)",
        "type": "number",
        "required": False,
        "default": 1,
    },
]


class GatewayConfig(BaseModel):
    api_key: str = ""
    webhook_secret: str = ""
    test_mode: bool = False
    charge_reuse_hours: int = Field(default=1, ge=0)
    api_base_url: str = "https://api.commerce.coinbase.com"
    request_timeout: float = 10.0
    invoice_url_template: str = "http://localhost:8000/invoices/{invoice_id}"

    def missing_required(self):
        return [f["name"] for f in CONFIG_FIELDS if f["required"] and not getattr(self, f["name"])]

    def invoice_url(self, invoice_id) -> str:
        return self.invoice_url_template.format(invoice_id=invoice_id)


def _env_flag(name: str) -> bool:
    return os.getenv(name, "false").strip().lower() in ("1", "true", "yes", "on")


def load_config() -> GatewayConfig:
    config = GatewayConfig(
        api_key=os.getenv("COINBASE_COMMERCE_API_KEY", ""),
        webhook_secret=os.getenv("COINBASE_COMMERCE_WEBHOOK_SECRET", ""),
        test_mode=_env_flag("COINBASE_COMMERCE_TEST_MODE"),
        charge_reuse_hours=int(os.getenv("COINBASE_COMMERCE_CHARGE_REUSE_HOURS") or 1),
        api_base_url=os.getenv("COINBASE_COMMERCE_API_URL", "https://api.commerce.coinbase.com"),
        request_timeout=float(os.getenv("COINBASE_COMMERCE_TIMEOUT") or 10),
        invoice_url_template=os.getenv(
            "INVOICE_URL_TEMPLATE", "http://localhost:8000/invoices/{invoice_id}"
        ),
    )

    missing = config.missing_required()
    if missing:
        logger.warning(f"Coinbase Commerce: missing required settings {missing}")

    return config
