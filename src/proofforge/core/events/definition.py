"""定義・保留定義イベントクラス"""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from ..types import NodeIdStr
from .base import BaseEvent, EventPayload
from .types import EventType


class DefAddedPayload(EventPayload):
    definition_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    content_hash: str = Field(..., min_length=1, description="contentのSHA-256")


class PendingDefCreatedPayload(EventPayload):
    pending_def_id: str = Field(..., min_length=1)
    term: str = Field(..., min_length=1)
    node_id: NodeIdStr


class PendingDefResolvedPayload(EventPayload):
    pending_def_id: str = Field(..., min_length=1)
    definition_id: str = Field(..., min_length=1)


class PendingDefCancelledPayload(EventPayload):
    pending_def_id: str = Field(..., min_length=1)
    reason: str | None = None


class DefAddedEvent(BaseEvent):
    """定義追加イベント"""

    type: Literal[EventType.DEF_ADDED] = EventType.DEF_ADDED
    payload: DefAddedPayload


class PendingDefCreatedEvent(BaseEvent):
    """保留定義作成イベント（ノードが未定義の用語を要求）"""

    type: Literal[EventType.PENDING_DEF_CREATED] = EventType.PENDING_DEF_CREATED
    payload: PendingDefCreatedPayload


class PendingDefResolvedEvent(BaseEvent):
    """保留定義解決イベント"""

    type: Literal[EventType.PENDING_DEF_RESOLVED] = EventType.PENDING_DEF_RESOLVED
    payload: PendingDefResolvedPayload


class PendingDefCancelledEvent(BaseEvent):
    """保留定義取消イベント（人間による却下）"""

    type: Literal[EventType.PENDING_DEF_CANCELLED] = EventType.PENDING_DEF_CANCELLED
    payload: PendingDefCancelledPayload
