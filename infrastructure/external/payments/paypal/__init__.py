"""PayPal REST adapters (OAuth, Orders v2, Payments v2, webhook verification)."""
from .environment import LIVE_BASE_URL, SANDBOX_BASE_URL, api_base_url
from .auth import PaypalAccessTokenProvider
from .orders import PaypalOrdersClient
from .webhooks import PaypalWebhookSignatureVerifier

__all__ = [
    "LIVE_BASE_URL",
    "SANDBOX_BASE_URL",
    "api_base_url",
    "PaypalAccessTokenProvider",
    "PaypalOrdersClient",
    "PaypalWebhookSignatureVerifier",
]
