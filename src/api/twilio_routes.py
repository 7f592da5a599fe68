"""Twilio Media Streams entry points.

This module provides:
- A voice webhook returning TwiML that connects the call to our media stream.
- The media stream websocket, bridged to an EVI conversation per call.
"""

from __future__ import annotations

import json
import logging
from urllib.parse import urlencode
from xml.sax.saxutils import escape

from fastapi import APIRouter, Depends, HTTPException, Request, Response, WebSocket, WebSocketDisconnect

from api.dependencies import get_evi_service
from config.settings import get_settings
from evi.service import EVIService
from integrations.twilio_streaming import TwilioMediaBridge, parse_twilio_ws_message

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


def _twiml_connect_stream(*, stream_url: str) -> str:
    stream = escape(stream_url, {'"': "&quot;"})
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        "<Connect>"
        f"<Stream url=\"{stream}\" />"
        "</Connect>"
        "</Response>"
    )


@router.post("/voice_stream")
async def twilio_voice_stream_start(request: Request) -> Response:
    settings = get_settings()
    if not settings.twilio_enable_media_streams:
        raise HTTPException(status_code=404, detail="Media Streams disabled")

    form = await request.form()
    call_sid = str(form.get("CallSid") or "").strip() or "unknown"

    # WebSocket endpoint must be publicly reachable (wss:// recommended).
    if settings.public_base_url:
        base = settings.public_base_url.rstrip("/")
        stream_url = _to_ws_url(f"{base}/api/twilio/stream")
    else:
        # Fallback to request host. This may not work behind proxies; prefer PUBLIC_BASE_URL.
        stream_url = _to_ws_url(str(request.base_url).rstrip("/") + "/api/twilio/stream")

    stream_url += "?" + urlencode({"callSid": call_sid})
    return _twiml_response(_twiml_connect_stream(stream_url=stream_url))


@router.websocket("/stream")
async def twilio_media_stream(websocket: WebSocket, service: EVIService = Depends(get_evi_service)) -> None:
    await websocket.accept()
    bridge = TwilioMediaBridge(
        service,
        websocket.send_json,
        call_sid=websocket.query_params.get("callSid"),
    )
    try:
        while True:
            message = await websocket.receive_text()
            try:
                parsed = parse_twilio_ws_message(message)
            except json.JSONDecodeError:
                LOGGER.warning("Ignoring non-JSON media stream message")
                continue
            await bridge.handle_event(parsed)
    except WebSocketDisconnect:
        LOGGER.info("Media stream disconnected for call %s", bridge.call_sid)
    finally:
        await bridge.close()
