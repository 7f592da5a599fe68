"""FastAPI routes exposing EVI bridge diagnostics and controls."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from api.dependencies import get_chat_history_client, get_evi_service
from api.schemas import (
    ChatTranscriptResponse,
    ConnectionTestResponse,
    ConversationStatusResponse,
    SendTextRequest,
    StatsResponse,
)
from evi.chat_history import ChatHistoryClient
from evi.errors import EVIError
from evi.service import EVIService
from evi.session import ConnectionInfo

LOGGER = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/evi/test", response_model=ConnectionTestResponse)
async def evi_connection_test(
    skip_connection: bool = False,
    service: EVIService = Depends(get_evi_service),
):
    # skip_connection=true only checks credentials, for routine status polling.
    try:
        result = await service.test_connection(skip_actual_connection=skip_connection)
    except EVIError as exc:
        LOGGER.error("EVI connection test failed: %s", exc)
        failure = ConnectionTestResponse(
            success=False,
            message=f"EVI connection failed: {exc.detail}",
            stats=service.get_stats(),
        )
        return JSONResponse(status_code=500, content=failure.model_dump(mode="json"))

    return ConnectionTestResponse(
        success=True,
        message="EVI connection test successful",
        data=result,
        stats=service.get_stats(),
    )


@router.post("/evi/initialize", response_model=ConnectionTestResponse)
async def initialize_evi(service: EVIService = Depends(get_evi_service)) -> ConnectionTestResponse:
    result = await service.initialize()
    return ConnectionTestResponse(
        success=True,
        message=result["message"],
        data=result["config"],
        stats=service.get_stats(),
    )


@router.get("/evi/stats", response_model=StatsResponse)
async def evi_stats(service: EVIService = Depends(get_evi_service)) -> StatsResponse:
    return StatsResponse(stats=service.get_stats())


@router.get("/evi/conversations/{call_id}", response_model=ConnectionInfo)
async def conversation_info(call_id: str, service: EVIService = Depends(get_evi_service)) -> ConnectionInfo:
    info = service.get_connection_info(call_id)
    if info is None:
        raise HTTPException(status_code=404, detail=f"No active EVI conversation for call {call_id}")
    return info


@router.post("/evi/conversations/{call_id}/text", response_model=ConversationStatusResponse)
async def send_conversation_text(
    call_id: str,
    payload: SendTextRequest,
    service: EVIService = Depends(get_evi_service),
) -> ConversationStatusResponse:
    await service.send_text(call_id, payload.text)
    return ConversationStatusResponse(call_id=call_id, status="sent")


@router.delete("/evi/conversations/{call_id}", response_model=ConversationStatusResponse)
async def end_conversation(call_id: str, service: EVIService = Depends(get_evi_service)) -> ConversationStatusResponse:
    await service.end_conversation(call_id)
    return ConversationStatusResponse(call_id=call_id, status="ended")


@router.get("/evi/chats/{chat_id}/transcript", response_model=ChatTranscriptResponse)
async def chat_transcript(
    chat_id: str,
    call_id: str | None = None,
    client: ChatHistoryClient = Depends(get_chat_history_client),
) -> ChatTranscriptResponse:
    conversation = await client.get_conversation(chat_id, call_id or chat_id)
    return ChatTranscriptResponse(
        chat_id=chat_id,
        transcript=conversation["transcript"],
        messages=conversation["messages"],
        total_events=conversation["total_events"],
        total_messages=conversation["total_messages"],
    )
