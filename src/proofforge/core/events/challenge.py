"""チャレンジイベントクラス"""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from ..types import ChallengeOutcome, ChallengeSeverity, ChallengeTarget, NodeIdStr
from .base import BaseEvent, EventPayload
from .types import EventType


class ChallengeCreatedPayload(EventPayload):
    challenge_id: str = Field(..., min_length=1)
    node_id: NodeIdStr
    target: ChallengeTarget = ChallengeTarget.STATEMENT
    severity: ChallengeSeverity = ChallengeSeverity.MAJOR
    reason: str = Field(..., min_length=1)


class ChallengeResolvedPayload(EventPayload):
    challenge_id: str = Field(..., min_length=1)
    outcome: ChallengeOutcome
    resolution: str | None = None


class ChallengeWithdrawnPayload(EventPayload):
    challenge_id: str = Field(..., min_length=1)
    reason: str | None = None


class ChallengeCreatedEvent(BaseEvent):
    """チャレンジ作成イベント"""

    type: Literal[EventType.CHALLENGE_CREATED] = EventType.CHALLENGE_CREATED
    payload: ChallengeCreatedPayload


class ChallengeResolvedEvent(BaseEvent):
    """チャレンジ解決イベント

    outcome が admitted ならノードは認容、refuted なら反駁となる。
    """

    type: Literal[EventType.CHALLENGE_RESOLVED] = EventType.CHALLENGE_RESOLVED
    payload: ChallengeResolvedPayload


class ChallengeWithdrawnEvent(BaseEvent):
    """チャレンジ取り下げイベント"""

    type: Literal[EventType.CHALLENGE_WITHDRAWN] = EventType.CHALLENGE_WITHDRAWN
    payload: ChallengeWithdrawnPayload
