class CoinbaseGatewayError(Exception):
    """Base class for errors raised by the Coinbase Commerce gateway."""


class SignatureInvalid(CoinbaseGatewayError):
    """Webhook signature header is missing, or does not match the body."""


class PayloadMalformed(CoinbaseGatewayError):
    """Webhook body passed the signature check but is not a usable event."""


class RemoteApiError(CoinbaseGatewayError):
    """Coinbase Commerce answered with a non-2xx status, or could not be reached."""

    def __init__(self, message, status_code=None, body=None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class PaymentInitiationError(CoinbaseGatewayError):
    pass


class InvoiceNotFound(CoinbaseGatewayError):
    pass


class DuplicateSettlement(CoinbaseGatewayError):
    """A settled payment already exists for this charge on this invoice."""
