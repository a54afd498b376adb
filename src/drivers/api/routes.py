"""FastAPI routes for the Drivers domain."""

from fastapi import APIRouter, Depends, Query, Response

from bootstrap import Services, get_services
from drivers.api.schemas import (
    LocationUpdateRequest,
    LoginRequest,
    RateDriverRequest,
    RegisterDriverRequest,
    UpdateDriverRequest,
)
from shared.identity import Caller, require_staff

driver_router = APIRouter(prefix="/drivers", tags=["drivers"])


@driver_router.post("", status_code=201)
def register_driver(body: RegisterDriverRequest, services: Services = Depends(get_services)) -> dict:
    driver = services.drivers.register(
        name=body.name,
        phone=body.phone,
        password=body.password,
        vehicle_info=body.vehicle_info,
        email=body.email,
    )
    return {"success": True, "driver": driver.to_json()}


@driver_router.post("/login")
def login(body: LoginRequest, services: Services = Depends(get_services)) -> dict:
    driver = services.drivers.authenticate(body.phone, body.password)
    return {"success": True, "driver": driver.to_json()}


@driver_router.get("")
def list_drivers(
    available: bool | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    services: Services = Depends(get_services),
) -> dict:
    drivers = services.drivers.list_drivers(available=available, limit=limit)
    return {"success": True, "drivers": [driver.to_json() for driver in drivers]}


@driver_router.get("/active")
def list_active_drivers(
    with_location: bool = Query(default=False, alias="withLocation"),
    services: Services = Depends(get_services),
) -> dict:
    """Available drivers seen recently, each with their in-flight deliveries."""
    drivers = services.drivers.list_active(with_location_only=with_location)
    return {"success": True, "drivers": [driver.to_json() for driver in drivers]}


@driver_router.get("/{driver_id}")
def get_driver(driver_id: str, services: Services = Depends(get_services)) -> dict:
    return {"success": True, "driver": services.drivers.get(driver_id).to_json()}


@driver_router.patch("/{driver_id}")
def update_driver(driver_id: str, body: UpdateDriverRequest, services: Services = Depends(get_services)) -> dict:
    driver = services.drivers.update_profile(
        driver_id,
        name=body.name,
        phone=body.phone,
        email=body.email,
        vehicle_info=body.vehicle_info,
    )
    if body.is_available is not None:
        driver = services.drivers.set_availability(driver_id, body.is_available)
    return {"success": True, "driver": driver.to_json()}


@driver_router.put("/{driver_id}/location")
def update_location(driver_id: str, body: LocationUpdateRequest, services: Services = Depends(get_services)) -> dict:
    driver = services.drivers.update_location(
        driver_id,
        latitude=body.latitude,
        longitude=body.longitude,
        accuracy=body.accuracy,
        timestamp=body.timestamp,
    )
    return {"success": True, "driver": driver.to_json()}


@driver_router.delete("/{driver_id}", status_code=204)
def delete_driver(
    driver_id: str,
    services: Services = Depends(get_services),
    caller: Caller = Depends(require_staff),
) -> Response:
    services.drivers.delete(driver_id)
    return Response(status_code=204)


@driver_router.post("/{driver_id}/rating")
def rate_driver(driver_id: str, body: RateDriverRequest, services: Services = Depends(get_services)) -> dict:
    rating = services.orders.submit_driver_rating(
        body.order_id,
        customer=body.customer(),
        rating=body.rating,
        comment=body.comment,
        driver_id=driver_id,
    )
    return {"success": True, "rating": rating.to_json()}
