"""ノードイベントクラス"""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from ..types import InferenceType, NodeIdStr, NodeType
from .base import BaseEvent, EventPayload, UtcDatetime
from .types import EventType


class NodeCreatedPayload(EventPayload):
    node_id: NodeIdStr
    node_type: NodeType
    statement: str = Field(..., min_length=1)
    inference: InferenceType
    author: str = Field(..., min_length=1)


class NodeClaimPayload(EventPayload):
    """クレーム取得・延長の共通ペイロード"""

    node_id: NodeIdStr
    owner: str = Field(..., min_length=1)
    expires_at: UtcDatetime = Field(..., description="リース期限 (UTC)。追記時に確定する")


class NodeOwnerPayload(EventPayload):
    """リース保持者による操作の共通ペイロード"""

    node_id: NodeIdStr
    owner: str = Field(..., min_length=1)
    note: str | None = None


class NodeAmendedPayload(EventPayload):
    node_id: NodeIdStr
    owner: str = Field(..., min_length=1)
    statement: str = Field(..., min_length=1)


class NodeArchivedPayload(EventPayload):
    node_id: NodeIdStr
    reason: str | None = None


class NodeCreatedEvent(BaseEvent):
    """ノード作成イベント"""

    type: Literal[EventType.NODE_CREATED] = EventType.NODE_CREATED
    payload: NodeCreatedPayload


class NodeClaimedEvent(BaseEvent):
    """ノードクレームイベント"""

    type: Literal[EventType.NODE_CLAIMED] = EventType.NODE_CLAIMED
    payload: NodeClaimPayload


class NodeClaimRefreshedEvent(BaseEvent):
    """リース延長イベント"""

    type: Literal[EventType.NODE_CLAIM_REFRESHED] = EventType.NODE_CLAIM_REFRESHED
    payload: NodeClaimPayload


class NodeReleasedEvent(BaseEvent):
    """クレーム解放イベント"""

    type: Literal[EventType.NODE_RELEASED] = EventType.NODE_RELEASED
    payload: NodeOwnerPayload


class NodeRefinedEvent(BaseEvent):
    """ノード精緻化完了イベント

    作成者が作業を終え、検証待ちの状態に移す。
    """

    type: Literal[EventType.NODE_REFINED] = EventType.NODE_REFINED
    payload: NodeOwnerPayload


class NodeAcceptedEvent(BaseEvent):
    """ノード受理イベント"""

    type: Literal[EventType.NODE_ACCEPTED] = EventType.NODE_ACCEPTED
    payload: NodeOwnerPayload


class NodeAmendedEvent(BaseEvent):
    """ノード主張の修正イベント"""

    type: Literal[EventType.NODE_AMENDED] = EventType.NODE_AMENDED
    payload: NodeAmendedPayload


class NodeArchivedEvent(BaseEvent):
    """ノードアーカイブイベント（終端）"""

    type: Literal[EventType.NODE_ARCHIVED] = EventType.NODE_ARCHIVED
    payload: NodeArchivedPayload
