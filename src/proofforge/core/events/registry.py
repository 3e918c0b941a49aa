"""イベントレジストリとパーサー

EVENT_TYPE_MAP と parse_event() の定義。
"""

from __future__ import annotations

import json
from typing import Any

from .base import BaseEvent, UnknownEvent, generate_event_id
from .challenge import ChallengeCreatedEvent, ChallengeResolvedEvent, ChallengeWithdrawnEvent
from .definition import (
    DefAddedEvent,
    PendingDefCancelledEvent,
    PendingDefCreatedEvent,
    PendingDefResolvedEvent,
)
from .node import (
    NodeAcceptedEvent,
    NodeAmendedEvent,
    NodeArchivedEvent,
    NodeClaimedEvent,
    NodeClaimRefreshedEvent,
    NodeCreatedEvent,
    NodeRefinedEvent,
    NodeReleasedEvent,
)
from .proof import ProofInitializedEvent
from .types import EventType

# イベントタイプからクラスへのマッピング
EVENT_TYPE_MAP: dict[EventType, type[BaseEvent]] = {
    EventType.PROOF_INITIALIZED: ProofInitializedEvent,
    # Node
    EventType.NODE_CREATED: NodeCreatedEvent,
    EventType.NODE_CLAIMED: NodeClaimedEvent,
    EventType.NODE_CLAIM_REFRESHED: NodeClaimRefreshedEvent,
    EventType.NODE_RELEASED: NodeReleasedEvent,
    EventType.NODE_REFINED: NodeRefinedEvent,
    EventType.NODE_ACCEPTED: NodeAcceptedEvent,
    EventType.NODE_AMENDED: NodeAmendedEvent,
    EventType.NODE_ARCHIVED: NodeArchivedEvent,
    # Definition
    EventType.DEF_ADDED: DefAddedEvent,
    # Challenge
    EventType.CHALLENGE_CREATED: ChallengeCreatedEvent,
    EventType.CHALLENGE_RESOLVED: ChallengeResolvedEvent,
    EventType.CHALLENGE_WITHDRAWN: ChallengeWithdrawnEvent,
    # Pending definition
    EventType.PENDING_DEF_CREATED: PendingDefCreatedEvent,
    EventType.PENDING_DEF_RESOLVED: PendingDefResolvedEvent,
    EventType.PENDING_DEF_CANCELLED: PendingDefCancelledEvent,
}


def parse_event(data: dict[str, Any] | str) -> BaseEvent:
    """イベントデータをパースして適切なイベントクラスに変換

    未知のイベントタイプはUnknownEventとして返す（前方互換性）。
    既知のタイプでペイロードがスキーマに合わない場合は
    pydantic.ValidationError をそのまま送出する。

    Raises:
        json.JSONDecodeError: 文字列がJSONとして解釈できない場合
        RecursionError: 入れ子が深すぎてJSONを復号できない場合
        TypeError: JSONオブジェクトでない場合
        pydantic.ValidationError: ペイロードがスキーマに合わない場合
    """
    if isinstance(data, str):
        data = json.loads(data)
    if not isinstance(data, dict):
        raise TypeError(f"event record must be a JSON object, got {type(data).__name__}")

    try:
        event_type = EventType(data.get("type"))
    except ValueError:
        return UnknownEvent(
            type=str(data.get("type") or "unknown"),
            seq=data.get("seq", 0) if isinstance(data.get("seq"), int) else 0,
            id=str(data.get("id") or generate_event_id()),
            actor=str(data.get("actor", "unknown")),
            payload=data.get("payload") if isinstance(data.get("payload"), dict) else {},
            prev_hash=data.get("prev_hash"),
            original_data=dict(data),
        )

    event_class = EVENT_TYPE_MAP[event_type]
    return event_class.model_validate({k: v for k, v in data.items() if k != "hash"})
