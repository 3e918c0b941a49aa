"""投影 (Projections)

台帳を畳み込んで得られる証明状態のモデル。
状態は常に台帳から再構築され、操作をまたいでキャッシュされない。
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..events import compute_hash
from ..types import (
    ChallengeOutcome,
    ChallengeSeverity,
    ChallengeTarget,
    InferenceType,
    NodeID,
    NodeType,
)


class NodeStatus(str, Enum):
    """ノードのライフサイクル状態"""

    UNCLAIMED = "unclaimed"
    CLAIMED = "claimed"
    REFINED = "refined"
    ACCEPTED = "accepted"
    CHALLENGED = "challenged"
    ADMITTED = "admitted"
    REFUTED = "refuted"
    ARCHIVED = "archived"


class ChallengeStatus(str, Enum):
    """チャレンジの状態"""

    OPEN = "open"
    RESOLVED = "resolved"
    WITHDRAWN = "withdrawn"
    SUPERSEDED = "superseded"  # 対象ノードのアーカイブで自動終了


class PendingDefStatus(str, Enum):
    """保留定義の状態"""

    PENDING = "pending"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


@dataclass
class Amendment:
    """ノード主張の修正履歴"""

    previous_statement: str
    statement: str
    owner: str
    amended_at: datetime


@dataclass
class NodeProjection:
    """ノードの投影

    子ノードは保持せず、ProofState.children_of で導出する。
    """

    id: NodeID
    node_type: NodeType
    statement: str
    inference: InferenceType
    author: str
    created_at: datetime
    status: NodeStatus = NodeStatus.UNCLAIMED
    owner: str | None = None
    lease_expires_at: datetime | None = None
    note: str | None = None
    status_before_challenge: NodeStatus | None = None
    updated_at: datetime | None = None
    amendments: list[Amendment] = field(default_factory=list)

    @property
    def parent_id(self) -> NodeID | None:
        return self.id.parent

    def is_lease_valid(self, now: datetime) -> bool:
        """クレーム中かつリース期限前か"""
        return (
            self.status == NodeStatus.CLAIMED
            and self.lease_expires_at is not None
            and now < self.lease_expires_at
        )

    def effective_status(self, now: datetime) -> NodeStatus:
        """期限切れのクレームを未クレームとして扱った状態

        リース期限切れはイベントを伴わず、評価時点の時刻で遅延判定する。
        """
        if self.status == NodeStatus.CLAIMED and not self.is_lease_valid(now):
            return NodeStatus.UNCLAIMED
        return self.status

    def effective_owner(self, now: datetime) -> str | None:
        return self.owner if self.is_lease_valid(now) else None

    @property
    def is_terminal(self) -> bool:
        return self.status == NodeStatus.ARCHIVED


@dataclass
class ChallengeProjection:
    """チャレンジの投影"""

    id: str
    node_id: NodeID
    target: ChallengeTarget
    severity: ChallengeSeverity
    reason: str
    raised_by: str
    created_at: datetime
    status: ChallengeStatus = ChallengeStatus.OPEN
    outcome: ChallengeOutcome | None = None
    resolution: str | None = None
    closed_by: str | None = None
    closed_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status == ChallengeStatus.OPEN


@dataclass
class DefinitionProjection:
    """定義の投影（作成後は不変）"""

    id: str
    name: str
    content: str
    content_hash: str
    created_at: datetime
    added_by: str


@dataclass
class PendingDefProjection:
    """保留定義の投影"""

    id: str
    term: str
    node_id: NodeID
    requested_by: str
    created_at: datetime
    status: PendingDefStatus = PendingDefStatus.PENDING
    resolved_by: str | None = None
    reason: str | None = None
    closed_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == PendingDefStatus.PENDING


@dataclass
class SkippedRecord:
    """投影時に読み飛ばしたレコード"""

    seq: int
    kind: str
    reason: str


@dataclass
class ProofState:
    """証明全体の投影

    Attributes:
        nodes: str(NodeID) -> ノード
        challenges: チャレンジID -> チャレンジ（作成順）
        definitions: 定義ID -> 定義（作成順）
        pending_defs: 保留定義ID -> 保留定義（作成順）
        latest_seq: 畳み込んだ最後のシーケンス番号（読み飛ばしたレコードを含む）
        skipped: 読み飛ばしたレコード
    """

    conjecture: str | None = None
    author: str | None = None
    initialized_at: datetime | None = None
    nodes: dict[str, NodeProjection] = field(default_factory=dict)
    challenges: dict[str, ChallengeProjection] = field(default_factory=dict)
    definitions: dict[str, DefinitionProjection] = field(default_factory=dict)
    pending_defs: dict[str, PendingDefProjection] = field(default_factory=dict)
    latest_seq: int = 0
    skipped: list[SkippedRecord] = field(default_factory=list)

    @property
    def initialized(self) -> bool:
        return self.initialized_at is not None

    # --- ノード ---

    def get_node(self, node_id: NodeID | str) -> NodeProjection | None:
        return self.nodes.get(str(node_id))

    def sorted_nodes(self) -> list[NodeProjection]:
        """NodeIDの数値順に並べたノード一覧"""
        return sorted(self.nodes.values(), key=lambda n: n.id)

    def children_of(self, node_id: NodeID | str) -> list[NodeID]:
        parent = NodeID.parse(node_id)
        return sorted(n.id for n in self.nodes.values() if n.id.parent == parent)

    def nodes_by_status(self, now: datetime) -> dict[NodeStatus, int]:
        """実効状態ごとのノード数"""
        counts: dict[NodeStatus, int] = {}
        for node in self.nodes.values():
            status = node.effective_status(now)
            counts[status] = counts.get(status, 0) + 1
        return counts

    # --- チャレンジ ---

    def open_challenge_for(self, node_id: NodeID | str) -> ChallengeProjection | None:
        key = NodeID.parse(node_id)
        for challenge in self.challenges.values():
            if challenge.node_id == key and challenge.is_open:
                return challenge
        return None

    def challenges_for(self, node_id: NodeID | str) -> list[ChallengeProjection]:
        key = NodeID.parse(node_id)
        return [c for c in self.challenges.values() if c.node_id == key]

    def resolved_challenges(self) -> list[ChallengeProjection]:
        """解決済みチャレンジの一覧（分析用の読み取り専用ビュー）"""
        return [c for c in self.challenges.values() if c.status == ChallengeStatus.RESOLVED]

    def blocking_challenges(self) -> list[ChallengeProjection]:
        """オープンかつ critical / major のチャレンジ"""
        return [c for c in self.challenges.values() if c.is_open and c.severity.is_blocking]

    def blocking_challenges_for(self, node_id: NodeID | str) -> list[ChallengeProjection]:
        """ノードの受理を塞いでいるチャレンジ"""
        return [c for c in self.challenges_for(node_id) if c.is_open and c.severity.is_blocking]

    # --- 定義 ---

    def definition_by_name(self, name: str) -> DefinitionProjection | None:
        """名前の完全一致（大文字小文字を区別）。同名が複数あれば最新を返す"""
        found = None
        for definition in self.definitions.values():
            if definition.name == name:
                found = definition
        return found

    def pending_defs_for(self, node_id: NodeID | str) -> list[PendingDefProjection]:
        key = NodeID.parse(node_id)
        return [p for p in self.pending_defs.values() if p.node_id == key]

    # --- ブロック ---

    def blocking_pending_def(self, node_id: NodeID | str) -> PendingDefProjection | None:
        """ノードを塞いでいる保留中の定義要求"""
        for pending in self.pending_defs_for(node_id):
            if pending.is_pending:
                return pending
        return None

    def is_blocked(self, node_id: NodeID | str) -> bool:
        """保留中の定義要求があるノードは、解決か取消までクレームも受理もできない"""
        return self.blocking_pending_def(node_id) is not None

    def blocked_nodes(self) -> list[NodeID]:
        return sorted({p.node_id for p in self.pending_defs.values() if p.is_pending})

    # --- 決定性検証 ---

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def fingerprint(self) -> str:
        """状態全体のJCS正規化ハッシュ

        同じ台帳の同じ範囲から投影した状態は同じ値になる。
        """
        return compute_hash(self.to_dict())
