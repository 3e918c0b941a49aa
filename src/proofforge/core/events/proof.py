"""証明初期化イベント"""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from .base import BaseEvent, EventPayload
from .types import EventType


class ProofInitializedPayload(EventPayload):
    conjecture: str = Field(..., min_length=1, description="証明対象の命題（ルートノードの主張）")
    author: str = Field(..., min_length=1)


class ProofInitializedEvent(BaseEvent):
    """証明初期化イベント

    ルートノード ``1`` を claim / assumption として生成する。
    """

    type: Literal[EventType.PROOF_INITIALIZED] = EventType.PROOF_INITIALIZED
    payload: ProofInitializedPayload
