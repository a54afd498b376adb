"""Payment gateway factory.

``build_gateway(settings)`` picks the adapter named by
``settings.payment_gateway``:
- FakeGateway for development and testing
- SumUpGateway for production
"""

from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.port import PaymentGateway
from payments.gateway.sumup_adapter import SumUpGateway
from shared.config import Settings


def build_gateway(settings: Settings) -> PaymentGateway:
    if settings.payment_gateway == "fake":
        return FakeGateway()
    if settings.payment_gateway == "sumup":
        return SumUpGateway(
            api_key=settings.sumup_api_key,
            merchant_code=settings.sumup_merchant_code,
            base_url=settings.sumup_base_url,
            timeout=settings.payment_timeout_seconds,
        )
    raise ValueError(f"Unknown payment gateway: {settings.payment_gateway}")
