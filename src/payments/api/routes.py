"""FastAPI routes for the Payments domain."""

from fastapi import APIRouter, Depends

from bootstrap import Services, get_services
from payments.api.schemas import ConfigureGatewayRequest, GatewayConfigResponse
from payments.gateway.fake_adapter import FakeGateway
from shared.errors import OwnershipError, ValidationError

payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/gateway/configure")
def configure_gateway(body: ConfigureGatewayRequest, services: Services = Depends(get_services)) -> dict:
    """Configure the FakeGateway behavior (non-production only).

    It allows toggling success/failure behavior for manual API testing.
    """
    if services.settings.is_production:
        raise OwnershipError("Gateway configuration not available in production")

    gateway = services.gateway
    if not isinstance(gateway, FakeGateway):
        raise ValidationError("Gateway configuration only available for FakeGateway")

    gateway.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
        available=body.available,
    )
    config = GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
        available=gateway.available,
    )
    return {"success": True, "gateway": config.to_json()}
