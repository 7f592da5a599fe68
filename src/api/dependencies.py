"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from functools import lru_cache

from evi.chat_history import ChatHistoryClient
from evi.service import EVIService


@lru_cache(maxsize=1)
def _service_factory() -> EVIService:
    # One service (and so one session registry) per process.
    return EVIService()


def get_evi_service() -> EVIService:
    return _service_factory()


def get_chat_history_client() -> ChatHistoryClient:
    return ChatHistoryClient()
