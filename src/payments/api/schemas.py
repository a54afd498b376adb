"""Pydantic request/response schemas for the Payments API."""

from shared.schema import CamelModel


class ConfigureGatewayRequest(CamelModel):
    should_succeed: bool = True
    failure_reason: str = "Card declined"
    available: bool = True


class GatewayConfigResponse(CamelModel):
    gateway: str
    should_succeed: bool
    failure_reason: str
    available: bool
