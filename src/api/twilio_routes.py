"""Twilio Voice integration.

This module provides:
- Voice webhook (TwiML) that connects a call leg to a Media Stream.
- Media Stream WebSocket endpoint that feeds each leg into the call's audio relay.

Both legs of a call must share a relay key. It defaults to the CallSid of the
webhook request and can be overridden with the ``relay_key`` query parameter
(e.g. when the agent leg is a separate call).
"""

from __future__ import annotations

import logging
from xml.sax.saxutils import escape, quoteattr

from fastapi import APIRouter, Depends, HTTPException, Request, Response, WebSocket, WebSocketDisconnect, status

from api.dependencies import get_relay_store
from config.settings import get_settings
from integrations.twilio_streaming import LEG_NAMES, CallRelayStore
from telephony.media_stream import TwilioMediaLeg
from translation.errors import RelayError

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["twilio"])


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _twiml_stream(*, stream_url: str, parameters: dict[str, str]) -> str:
    stream = escape(stream_url)
    params = "".join(
        f"<Parameter name={quoteattr(name)} value={quoteattr(value)} />" for name, value in parameters.items()
    )
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        "<Connect>"
        f"<Stream url=\"{stream}\">{params}</Stream>"
        "</Connect>"
        "</Response>"
    )


def _stream_url(request: Request, leg: str) -> str:
    settings = get_settings()
    if settings.public_base_url:
        base = settings.public_base_url.rstrip("/")
    else:
        # Fallback to request host. This may not work behind proxies; prefer PUBLIC_BASE_URL.
        base = str(request.base_url).rstrip("/")
    return _to_ws_url(f"{base}/api/twilio/stream/{leg}")


@router.post("/voice")
async def twilio_voice_webhook(
    request: Request,
    leg: str = "inbound",
    language: str | None = None,
    relay_key: str | None = None,
) -> Response:
    if leg not in LEG_NAMES:
        raise HTTPException(status_code=404, detail=f"Unknown media leg: {leg}")

    form = await request.form()
    call_sid = str(form.get("CallSid") or "").strip() or "unknown"

    parameters = {
        "relayKey": relay_key or call_sid,
        "callerLanguage": language or get_settings().caller_language,
    }
    return _twiml_response(_twiml_stream(stream_url=_stream_url(request, leg), parameters=parameters))


@router.websocket("/stream/{leg}")
async def twilio_media_stream(
    websocket: WebSocket,
    leg: str,
    store: CallRelayStore = Depends(get_relay_store),
) -> None:
    await websocket.accept()
    if leg not in LEG_NAMES:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    media_leg = TwilioMediaLeg(websocket, name=leg)
    call_key: str | None = None
    attached = False
    try:
        start = await media_leg.wait_for_start()
        call_key = start.custom_parameters.get("relayKey") or start.call_sid or start.stream_sid
        language = start.custom_parameters.get("callerLanguage") or get_settings().caller_language

        await store.attach(call_key, leg, media_leg, language)
        attached = True
        await media_leg.run()
    except WebSocketDisconnect:
        LOGGER.info("%s stream disconnected (call=%s)", leg, call_key)
    except RelayError as exc:
        LOGGER.warning("%s stream rejected (call=%s): %s", leg, call_key, exc.detail)
    except ValueError as exc:
        # Relay could not be built (e.g. missing TRANSLATION_API_KEY).
        LOGGER.error("%s stream cannot be relayed (call=%s): %s", leg, call_key, exc)
        await media_leg.close(code=status.WS_1011_INTERNAL_ERROR)
    finally:
        if attached:
            report = await store.release(call_key)
            if report is not None:
                LOGGER.info("Call %s latency report: %s", call_key, report)
        await media_leg.close()
