import logging
import requests
from pydantic import ValidationError

from coinbase_gateway.exceptions import RemoteApiError
from coinbase_gateway.schemas import Charge

logger = logging.getLogger(__name__)

API_VERSION = "2018-03-22"


class CoinbaseCommerceClient:
    """Thin client for the two Coinbase Commerce charge endpoints we use."""

    def __init__(self, config):
        self.config = config

    def _headers(self):
        return {
            "X-CC-Api-Key": self.config.api_key,
            "X-CC-Version": API_VERSION,
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, **kwargs) -> Charge:
        url = f"{self.config.api_base_url.rstrip('/')}{path}"
        try:
            response = requests.request(
                method,
                url,
                headers=self._headers(),
                timeout=self.config.request_timeout,
                **kwargs
            )
        except requests.exceptions.RequestException as e:
            raise RemoteApiError(f"Coinbase API unreachable: {e}") from e

        if not response.ok:
            raise RemoteApiError(
                f"Coinbase API returned {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return Charge.model_validate(response.json().get("data") or {})
        except (ValueError, AttributeError, ValidationError) as e:
            raise RemoteApiError(
                f"Unexpected Coinbase API response: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e

    def get_charge(self, charge_id: str) -> Charge:
        return self._request("GET", f"/charges/{charge_id}")

    def create_charge(self, payload: dict) -> Charge:
        return self._request("POST", "/charges", json=payload)
