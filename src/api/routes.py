"""FastAPI routes exposing relay status."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_relay_store
from api.schemas import ActiveCallResponse, HealthResponse
from api.twilio_routes import router as twilio_router
from integrations.twilio_streaming import CallRelayStore

router = APIRouter()
router.include_router(twilio_router)


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse()


@router.get("/calls", response_model=list[ActiveCallResponse])
async def list_active_calls(
    store: CallRelayStore = Depends(get_relay_store),
) -> list[ActiveCallResponse]:
    calls = await store.snapshot()
    return [
        ActiveCallResponse(
            call_key=call.call_key,
            language=call.language,
            legs=list(call.legs),
            started=call.started,
        )
        for call in calls
    ]
