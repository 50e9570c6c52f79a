"""PayPal REST environments, selected by the `mode` setting."""
from __future__ import annotations

LIVE_BASE_URL = "https://api-m.paypal.com"
SANDBOX_BASE_URL = "https://api-m.sandbox.paypal.com"


def api_base_url(mode: str | None) -> str:
    """Only an explicit `live` mode talks to production."""
    return LIVE_BASE_URL if (mode or "").lower() == "live" else SANDBOX_BASE_URL
