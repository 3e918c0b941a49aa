"""イベント種別

台帳に記録されるイベントの閉じた集合。
値はドット区切りで、台帳ファイル上の ``type`` フィールドにそのまま書かれる。
"""

from __future__ import annotations

from enum import Enum


class EventType(str, Enum):
    """イベント種別"""

    # 証明
    PROOF_INITIALIZED = "proof.initialized"

    # ノード
    NODE_CREATED = "node.created"
    NODE_CLAIMED = "node.claimed"
    NODE_CLAIM_REFRESHED = "node.claim_refreshed"
    NODE_RELEASED = "node.released"
    NODE_REFINED = "node.refined"
    NODE_ACCEPTED = "node.accepted"
    NODE_AMENDED = "node.amended"
    NODE_ARCHIVED = "node.archived"

    # 定義
    DEF_ADDED = "def.added"

    # チャレンジ
    CHALLENGE_CREATED = "challenge.created"
    CHALLENGE_RESOLVED = "challenge.resolved"
    CHALLENGE_WITHDRAWN = "challenge.withdrawn"

    # 保留定義
    PENDING_DEF_CREATED = "pending_def.created"
    PENDING_DEF_RESOLVED = "pending_def.resolved"
    PENDING_DEF_CANCELLED = "pending_def.cancelled"
