"""Live order notifications over server-sent events."""

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from bootstrap import Services, get_services
from tracking.stream import event_stream

tracking_router = APIRouter(prefix="/orders", tags=["tracking"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@tracking_router.get("/notifications")
async def order_notifications(services: Services = Depends(get_services)) -> StreamingResponse:
    stream = event_stream(services.broker, keepalive_seconds=services.settings.stream_keepalive_seconds)
    return StreamingResponse(stream, media_type="text/event-stream", headers=SSE_HEADERS)
