"""状態投影 (Projector)

台帳のレコードを昇順に畳み込んで ProofState を構築する純粋な処理。

- JSONとして解釈できない行、スキーマに合わないペイロードは警告して読み飛ばす
- 未知のイベント種別は読み飛ばす（前方互換性）
- 投影済み状態に対して不正なイベント（競合で紛れ込んだ2つ目のクレームなど）も
  警告して読み飛ばすため、先に台帳に載ったイベントが優先される
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable

from pydantic import ValidationError

from ..errors import (
    AlreadyExistsError,
    ChallengeAlreadyOpenError,
    ChallengeNotFoundError,
    DefinitionNotFoundError,
    InvalidInputError,
    NodeBlockedError,
    NodeNotFoundError,
    NotFoundError,
    ParentNotFoundError,
    PendingDefNotFoundError,
    ProofNotInitializedError,
    StateConflictError,
)
from ..events import (
    BaseEvent,
    ChallengeCreatedEvent,
    ChallengeResolvedEvent,
    ChallengeWithdrawnEvent,
    DefAddedEvent,
    EventType,
    NodeAcceptedEvent,
    NodeAmendedEvent,
    NodeArchivedEvent,
    NodeClaimedEvent,
    NodeClaimRefreshedEvent,
    NodeCreatedEvent,
    NodeRefinedEvent,
    NodeReleasedEvent,
    PendingDefCancelledEvent,
    PendingDefCreatedEvent,
    PendingDefResolvedEvent,
    ProofInitializedEvent,
    UnknownEvent,
    parse_event,
)
from ..ledger.projections import (
    Amendment,
    ChallengeProjection,
    DefinitionProjection,
    NodeProjection,
    NodeStatus,
    PendingDefProjection,
    PendingDefStatus,
    ProofState,
    SkippedRecord,
)
from ..ledger.storage import Ledger
from ..types import InferenceType, NodeID, NodeType
from .machines import ChallengeStateMachine, NodeStateMachine, PendingDefStateMachine

logger = logging.getLogger(__name__)

# リプレイ時に読み飛ばす「不正なイベント」の例外
_REJECTED = (StateConflictError, NotFoundError, InvalidInputError)


class ProofProjector:
    """証明状態の投影器

    イベント種別ごとのハンドラを明示的な表で持つ。
    カタログの全種別にハンドラがなければ生成時に失敗する。
    """

    def __init__(self, state: ProofState | None = None):
        self.state = state or ProofState()
        self._handlers: dict[EventType, Callable[..., None]] = {
            EventType.PROOF_INITIALIZED: self._handle_proof_initialized,
            EventType.NODE_CREATED: self._handle_node_created,
            EventType.NODE_CLAIMED: self._handle_node_claimed,
            EventType.NODE_CLAIM_REFRESHED: self._handle_node_claim_refreshed,
            EventType.NODE_RELEASED: self._handle_node_released,
            EventType.NODE_REFINED: self._handle_node_refined,
            EventType.NODE_ACCEPTED: self._handle_node_accepted,
            EventType.NODE_AMENDED: self._handle_node_amended,
            EventType.NODE_ARCHIVED: self._handle_node_archived,
            EventType.DEF_ADDED: self._handle_def_added,
            EventType.CHALLENGE_CREATED: self._handle_challenge_created,
            EventType.CHALLENGE_RESOLVED: self._handle_challenge_resolved,
            EventType.CHALLENGE_WITHDRAWN: self._handle_challenge_withdrawn,
            EventType.PENDING_DEF_CREATED: self._handle_pending_def_created,
            EventType.PENDING_DEF_RESOLVED: self._handle_pending_def_resolved,
            EventType.PENDING_DEF_CANCELLED: self._handle_pending_def_cancelled,
        }
        missing = set(EventType) - set(self._handlers)
        if missing:
            raise RuntimeError(f"no projector handler for: {sorted(m.value for m in missing)}")

    # ------------------------------------------------------------------
    # 入口
    # ------------------------------------------------------------------

    def apply_record(self, seq: int, raw: str) -> bool:
        """生のレコードを1件適用

        Returns:
            状態に反映されたか（読み飛ばした場合はFalse）
        """
        self.state.latest_seq = seq
        try:
            event = parse_event(raw)
        except (json.JSONDecodeError, TypeError) as e:
            return self._skip(seq, "unparseable", f"not a JSON event object: {e}")
        except RecursionError:
            return self._skip(seq, "unparseable", "record is nested too deeply to decode")
        except ValidationError as e:
            kind = _peek_type(raw)
            return self._skip(seq, kind, f"payload does not match schema: {e.error_count()} errors")
        return self.apply(event, seq=seq)

    def apply(self, event: BaseEvent, seq: int | None = None) -> bool:
        """型付きイベントを1件適用

        Returns:
            状態に反映されたか（読み飛ばした場合はFalse）
        """
        seq = seq if seq is not None else event.seq
        if seq > self.state.latest_seq:
            self.state.latest_seq = seq

        if isinstance(event, UnknownEvent):
            return self._skip(seq, event.type_value, "unknown event type")

        try:
            self._handlers[EventType(event.type)](event)
        except _REJECTED as e:
            return self._skip(seq, event.type_value, str(e))
        return True

    def check(self, event: BaseEvent) -> None:
        """イベントを状態に適用し、不正なら例外をそのまま送出する

        サービス層の事前検証用。呼び出し側は状態のコピーを渡すこと。
        """
        if isinstance(event, UnknownEvent):
            raise InvalidInputError(f"unknown event type: {event.type_value}")
        self._handlers[EventType(event.type)](event)

    def _skip(self, seq: int, kind: str, reason: str) -> bool:
        logger.warning("Skipping ledger record seq=%d (%s): %s", seq, kind, reason)
        self.state.skipped.append(SkippedRecord(seq=seq, kind=kind, reason=reason))
        return False

    # ------------------------------------------------------------------
    # 参照ヘルパー
    # ------------------------------------------------------------------

    def _require_initialized(self) -> None:
        if not self.state.initialized:
            raise ProofNotInitializedError()

    def _node(self, node_id: str) -> NodeProjection:
        node = self.state.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def _challenge(self, challenge_id: str) -> ChallengeProjection:
        challenge = self.state.challenges.get(challenge_id)
        if challenge is None:
            raise ChallengeNotFoundError(challenge_id)
        return challenge

    def _pending_def(self, pending_def_id: str) -> PendingDefProjection:
        pending = self.state.pending_defs.get(pending_def_id)
        if pending is None:
            raise PendingDefNotFoundError(pending_def_id)
        return pending

    # ------------------------------------------------------------------
    # 証明・ノード
    # ------------------------------------------------------------------

    def _handle_proof_initialized(self, event: ProofInitializedEvent) -> None:
        if self.state.initialized:
            raise AlreadyExistsError("proof is already initialized", current_state="initialized")
        root = NodeID.root()
        self.state.conjecture = event.payload.conjecture
        self.state.author = event.payload.author
        self.state.initialized_at = event.timestamp
        self.state.nodes[str(root)] = NodeProjection(
            id=root,
            node_type=NodeType.CLAIM,
            statement=event.payload.conjecture,
            inference=InferenceType.ASSUMPTION,
            author=event.payload.author,
            created_at=event.timestamp,
        )

    def _handle_node_created(self, event: NodeCreatedEvent) -> None:
        self._require_initialized()
        p = event.payload
        node_id = NodeID.parse(p.node_id)
        if str(node_id) in self.state.nodes:
            raise AlreadyExistsError(
                f"node {node_id} already exists", entity_id=str(node_id), current_state="exists"
            )
        parent = self.state.get_node(node_id.parent) if node_id.parent else None
        if parent is None:
            raise ParentNotFoundError(node_id, node_id.parent)
        if parent.is_terminal:
            raise StateConflictError(
                f"parent {parent.id} is archived",
                entity_id=str(parent.id),
                current_state=parent.status,
                requested=EventType.NODE_CREATED,
            )
        self.state.nodes[str(node_id)] = NodeProjection(
            id=node_id,
            node_type=p.node_type,
            statement=p.statement,
            inference=p.inference,
            author=p.author,
            created_at=event.timestamp,
        )

    def _ensure_not_blocked(self, node: NodeProjection, event: BaseEvent) -> None:
        """保留中の定義要求があるノードへのクレーム・受理を拒否

        Raises:
            NodeBlockedError: 定義要求が解決も取消もされていない場合
        """
        pending = self.state.blocking_pending_def(node.id)
        if pending is not None:
            raise NodeBlockedError(node.id, event.type, pending_def_id=pending.id)

    def _handle_node_claimed(self, event: NodeClaimedEvent) -> None:
        node = self._node(event.payload.node_id)
        self._ensure_not_blocked(node, event)
        NodeStateMachine(node, event.timestamp).transition(event)
        node.status = NodeStatus.CLAIMED
        node.owner = event.payload.owner
        node.lease_expires_at = event.payload.expires_at
        node.updated_at = event.timestamp

    def _handle_node_claim_refreshed(self, event: NodeClaimRefreshedEvent) -> None:
        node = self._node(event.payload.node_id)
        NodeStateMachine(node, event.timestamp).transition(event)
        node.lease_expires_at = event.payload.expires_at
        node.updated_at = event.timestamp

    def _handle_node_released(self, event: NodeReleasedEvent) -> None:
        node = self._node(event.payload.node_id)
        NodeStateMachine(node, event.timestamp).transition(event)
        node.status = NodeStatus.UNCLAIMED
        node.owner = None
        node.lease_expires_at = None
        node.updated_at = event.timestamp

    def _settle(self, event: NodeRefinedEvent | NodeAcceptedEvent) -> None:
        node = self._node(event.payload.node_id)
        node.status = NodeStateMachine(node, event.timestamp).transition(event)
        node.owner = None
        node.lease_expires_at = None
        if event.payload.note:
            node.note = event.payload.note
        node.updated_at = event.timestamp

    def _handle_node_refined(self, event: NodeRefinedEvent) -> None:
        self._settle(event)

    def _handle_node_accepted(self, event: NodeAcceptedEvent) -> None:
        node = self._node(event.payload.node_id)
        self._ensure_not_blocked(node, event)
        # 受理を塞ぐのは critical / major のチャレンジのみ
        blocking = self.state.blocking_challenges_for(node.id)
        if blocking:
            raise NodeBlockedError(node.id, event.type, challenge_ids=[c.id for c in blocking])
        self._settle(event)

    def _handle_node_amended(self, event: NodeAmendedEvent) -> None:
        node = self._node(event.payload.node_id)
        NodeStateMachine(node, event.timestamp).transition(event)
        node.amendments.append(
            Amendment(
                previous_statement=node.statement,
                statement=event.payload.statement,
                owner=event.payload.owner,
                amended_at=event.timestamp,
            )
        )
        node.statement = event.payload.statement
        node.updated_at = event.timestamp

    def _handle_node_archived(self, event: NodeArchivedEvent) -> None:
        node = self._node(event.payload.node_id)
        node.status = NodeStateMachine(node, event.timestamp).transition(event)
        node.owner = None
        node.lease_expires_at = None
        node.updated_at = event.timestamp

        # アーカイブされたノードへのオープンなチャレンジは自動的に終了する
        for challenge in self.state.challenges_for(node.id):
            if challenge.is_open:
                challenge.status = ChallengeStateMachine(challenge).transition(event)
                challenge.closed_by = event.actor
                challenge.closed_at = event.timestamp

    # ------------------------------------------------------------------
    # 定義
    # ------------------------------------------------------------------

    def _handle_def_added(self, event: DefAddedEvent) -> None:
        p = event.payload
        if p.definition_id in self.state.definitions:
            raise AlreadyExistsError(
                f"definition {p.definition_id} already exists", entity_id=p.definition_id
            )
        self.state.definitions[p.definition_id] = DefinitionProjection(
            id=p.definition_id,
            name=p.name,
            content=p.content,
            content_hash=p.content_hash,
            created_at=event.timestamp,
            added_by=event.actor,
        )

    # ------------------------------------------------------------------
    # チャレンジ
    # ------------------------------------------------------------------

    def _handle_challenge_created(self, event: ChallengeCreatedEvent) -> None:
        p = event.payload
        if p.challenge_id in self.state.challenges:
            raise AlreadyExistsError(
                f"challenge {p.challenge_id} already exists", entity_id=p.challenge_id
            )
        node = self._node(p.node_id)
        open_challenge = self.state.open_challenge_for(node.id)
        if open_challenge is not None:
            raise ChallengeAlreadyOpenError(node.id, open_challenge.id)

        previous = node.effective_status(event.timestamp)
        status = NodeStateMachine(node, event.timestamp).transition(event)
        # minor / note は記録のみで、ノードの状態は変えない
        if p.severity.is_blocking:
            node.status = status
            node.status_before_challenge = previous
            if previous != NodeStatus.CLAIMED:
                node.owner = None
                node.lease_expires_at = None
            node.updated_at = event.timestamp

        self.state.challenges[p.challenge_id] = ChallengeProjection(
            id=p.challenge_id,
            node_id=node.id,
            target=p.target,
            severity=p.severity,
            reason=p.reason,
            raised_by=event.actor,
            created_at=event.timestamp,
        )

    def _close_challenge(self, event: ChallengeResolvedEvent | ChallengeWithdrawnEvent) -> None:
        """チャレンジを閉じる

        critical / major のチャレンジのみ対象ノードを動かす。解決なら認容か反駁、
        取り下げならチャレンジ前の状態（クレーム中だった場合はそのリース）に戻す。
        """
        challenge = self._challenge(event.payload.challenge_id)
        node = self._node(str(challenge.node_id))

        challenge_machine = ChallengeStateMachine(challenge)
        challenge_machine.transition(event)
        node_status = None
        if challenge.severity.is_blocking:
            node_status = NodeStateMachine(node, event.timestamp).transition(event)

        challenge.status = challenge_machine.current_state
        challenge.closed_by = event.actor
        challenge.closed_at = event.timestamp
        if node_status is None:
            return
        node.status = node_status
        node.status_before_challenge = None
        if node_status != NodeStatus.CLAIMED:
            node.owner = None
            node.lease_expires_at = None
        node.updated_at = event.timestamp

    def _handle_challenge_resolved(self, event: ChallengeResolvedEvent) -> None:
        self._close_challenge(event)
        challenge = self.state.challenges[event.payload.challenge_id]
        challenge.outcome = event.payload.outcome
        challenge.resolution = event.payload.resolution

    def _handle_challenge_withdrawn(self, event: ChallengeWithdrawnEvent) -> None:
        self._close_challenge(event)
        self.state.challenges[event.payload.challenge_id].resolution = event.payload.reason

    # ------------------------------------------------------------------
    # 保留定義
    # ------------------------------------------------------------------

    def _handle_pending_def_created(self, event: PendingDefCreatedEvent) -> None:
        p = event.payload
        if p.pending_def_id in self.state.pending_defs:
            raise AlreadyExistsError(
                f"pending definition {p.pending_def_id} already exists",
                entity_id=p.pending_def_id,
            )
        node = self._node(p.node_id)
        for existing in self.state.pending_defs_for(node.id):
            if existing.is_pending:
                raise AlreadyExistsError(
                    f"node {node.id} already has pending definition request {existing.id}",
                    entity_id=str(node.id),
                    current_state=existing.status,
                    pending_def_id=existing.id,
                )
        self.state.pending_defs[p.pending_def_id] = PendingDefProjection(
            id=p.pending_def_id,
            term=p.term,
            node_id=node.id,
            requested_by=event.actor,
            created_at=event.timestamp,
        )

    def _handle_pending_def_resolved(self, event: PendingDefResolvedEvent) -> None:
        pending = self._pending_def(event.payload.pending_def_id)
        if event.payload.definition_id not in self.state.definitions:
            raise DefinitionNotFoundError(event.payload.definition_id)
        PendingDefStateMachine(pending).transition(event)
        pending.status = PendingDefStatus.RESOLVED
        pending.resolved_by = event.payload.definition_id
        pending.closed_at = event.timestamp

    def _handle_pending_def_cancelled(self, event: PendingDefCancelledEvent) -> None:
        pending = self._pending_def(event.payload.pending_def_id)
        PendingDefStateMachine(pending).transition(event)
        pending.status = PendingDefStatus.CANCELLED
        pending.reason = event.payload.reason
        pending.closed_at = event.timestamp


def _peek_type(raw: str) -> str:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, RecursionError):
        return "unparseable"
    return str(data.get("type", "unknown")) if isinstance(data, dict) else "unparseable"


def build_proof_state(records: Iterable[tuple[int, str]]) -> ProofState:
    """(シーケンス番号, 生の行) の列から証明状態を構築"""
    projector = ProofProjector()
    for seq, raw in records:
        projector.apply_record(seq, raw)
    return projector.state


def project(ledger: Ledger) -> ProofState:
    """台帳を先頭から走査して証明状態を構築

    Raises:
        LedgerCorruptionError: 台帳の構造破損（書きかけの末尾レコード）
    """
    return build_proof_state(ledger.records())
