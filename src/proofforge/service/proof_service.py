"""証明サービス (Facade)

全ての変更操作は次の手順で行う。

1. 台帳を先頭から投影して最新の ProofState を得る
2. 要求された操作の前提条件をその状態に対して検証する
3. 妥当なら、遷移を表すイベントを1件だけ台帳に追記する
4. 採番されたシーケンス番号と作成されたエンティティIDを返す

追記は「投影時点の最終シーケンス番号」を条件とする条件付き追記で行う。
他の書き込みに追い越された場合は投影からやり直して再検証するため、
競合に負けたクレームは勝者を示す NodeAlreadyClaimedError で失敗する。
状態は操作をまたいで保持しない。
"""

from __future__ import annotations

import copy
import hashlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from ..core.config import ProofForgeSettings, get_settings
from ..core.errors import (
    AlreadyExistsError,
    ConcurrentModificationError,
    DefinitionNotFoundError,
    ErrorCode,
    InvalidInputError,
    NodeNotFoundError,
    ParentNotFoundError,
    ProofNotInitializedError,
    SequenceMismatchError,
    require_text,
)
from ..core.events import (
    BaseEvent,
    ChallengeCreatedEvent,
    ChallengeCreatedPayload,
    ChallengeResolvedEvent,
    ChallengeResolvedPayload,
    ChallengeWithdrawnEvent,
    ChallengeWithdrawnPayload,
    DefAddedEvent,
    DefAddedPayload,
    EventType,
    NodeAcceptedEvent,
    NodeAmendedEvent,
    NodeAmendedPayload,
    NodeArchivedEvent,
    NodeArchivedPayload,
    NodeClaimedEvent,
    NodeClaimPayload,
    NodeClaimRefreshedEvent,
    NodeCreatedEvent,
    NodeCreatedPayload,
    NodeOwnerPayload,
    NodeRefinedEvent,
    NodeReleasedEvent,
    PendingDefCancelledEvent,
    PendingDefCancelledPayload,
    PendingDefCreatedEvent,
    PendingDefCreatedPayload,
    PendingDefResolvedEvent,
    PendingDefResolvedPayload,
    ProofInitializedEvent,
    ProofInitializedPayload,
    generate_event_id,
    utc_now,
)
from ..core.ledger import (
    ChallengeProjection,
    ChallengeStatus,
    DefinitionProjection,
    Ledger,
    NodeProjection,
    NodeStatus,
    PendingDefProjection,
    PendingDefStatus,
    ProofState,
)
from ..core.state import ProofProjector, ensure_lease_holder, project
from ..core.types import (
    ChallengeOutcome,
    ChallengeSeverity,
    ChallengeTarget,
    InferenceType,
    NodeID,
    NodeType,
    parse_enum,
)
from .lookup import find_challenge, find_definition, find_pending_def

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# 操作ごとの計画関数: (最新状態, 現在時刻) -> (追記するイベント, エンティティID)
Plan = Callable[[ProofState, datetime], "tuple[BaseEvent, str | None]"]


@dataclass(frozen=True)
class OperationResult:
    """変更操作の結果

    Attributes:
        seq: 台帳が採番したシーケンス番号
        entity_id: 作成・変更したエンティティのID
        event: 台帳に書き込まれたイベント
    """

    seq: int
    entity_id: str | None
    event: BaseEvent


def content_hash(content: str) -> str:
    """定義本文のSHA-256"""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class ProofService:
    """証明操作のファサード

    Attributes:
        proof_dir: 証明ディレクトリ
        ledger: 台帳
        settings: 設定
    """

    def __init__(
        self,
        proof_dir: Path | str | None = None,
        settings: ProofForgeSettings | None = None,
        clock: Clock | None = None,
    ):
        """
        Args:
            proof_dir: 証明ディレクトリ。Noneの場合は設定の proof.path
            settings: 設定。Noneの場合はグローバル設定
            clock: 現在時刻を返す関数（テストで差し替える）
        """
        self.settings = settings or get_settings()
        self.proof_dir = Path(proof_dir) if proof_dir else self.settings.get_proof_path()
        self.ledger = Ledger(
            self.proof_dir,
            file_name=self.settings.ledger.file_name,
            lock_timeout=self.settings.ledger.lock_timeout_seconds,
            fsync=self.settings.ledger.fsync,
        )
        self._clock = clock or utc_now

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # 共通処理
    # ------------------------------------------------------------------

    def load_state(self) -> ProofState:
        """台帳を先頭から投影して最新の状態を得る（キャッシュしない）"""
        return project(self.ledger)

    def _commit(self, operation: str, plan: Plan) -> OperationResult:
        """投影 → 検証 → 条件付き追記

        Raises:
            ConcurrentModificationError: 再検証の上限まで追い越され続けた場合
        """
        attempts = self.settings.service.max_append_attempts
        for attempt in range(1, attempts + 1):
            state = self.load_state()
            event, entity_id = plan(state, self.now())
            try:
                stored = self.ledger.append_event(event, expected_seq=state.latest_seq)
            except SequenceMismatchError as e:
                logger.info(
                    "%s lost append race at seq %d (attempt %d/%d); revalidating",
                    operation,
                    e.expected,
                    attempt,
                    attempts,
                )
                continue
            logger.debug("%s committed as seq %d (%s)", operation, stored.seq, entity_id)
            return OperationResult(seq=stored.seq, entity_id=entity_id, event=stored)

        raise ConcurrentModificationError(
            f"{operation} could not be committed after {attempts} attempts",
            requested=operation,
            attempts=attempts,
        )

    @staticmethod
    def _check(state: ProofState, event: BaseEvent) -> None:
        """イベントを状態のコピーに適用して妥当性を確認する

        リプレイと同じハンドラ・状態機械を通すため、受理される条件は投影と一致する。
        """
        ProofProjector(copy.deepcopy(state)).check(event)

    @staticmethod
    def _require_initialized(state: ProofState) -> None:
        if not state.initialized:
            raise ProofNotInitializedError()

    @staticmethod
    def _require_node(state: ProofState, node_id: NodeID) -> NodeProjection:
        node = state.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def _lease_duration(self, duration: float | timedelta | None) -> timedelta:
        if duration is None:
            return timedelta(seconds=self.settings.claims.default_lease_seconds)
        if not isinstance(duration, timedelta):
            duration = timedelta(seconds=duration)
        limit = self.settings.claims.max_lease_seconds
        if duration <= timedelta(0) or duration > timedelta(seconds=limit):
            raise InvalidInputError(
                f"lease duration must be in (0, {limit}] seconds, got {duration.total_seconds()}",
                code=ErrorCode.INVALID_TIMEOUT,
            )
        return duration

    def _check_shape(self, state: ProofState, node_id: NodeID) -> None:
        """深さ・子数の上限を確認"""
        limits = self.settings.limits
        if node_id.depth > limits.max_depth:
            raise InvalidInputError(
                f"node {node_id} exceeds max depth {limits.max_depth}",
                code=ErrorCode.DEPTH_EXCEEDED,
                node_id=str(node_id),
            )
        parent = node_id.parent
        if parent is not None and len(state.children_of(parent)) >= limits.max_children:
            raise InvalidInputError(
                f"node {parent} already has {limits.max_children} children",
                code=ErrorCode.CHILD_LIMIT_EXCEEDED,
                node_id=str(parent),
            )
        if node_id.depth > limits.warn_depth:
            logger.info("Node %s is deeper than %d levels", node_id, limits.warn_depth)

    # ------------------------------------------------------------------
    # 証明・ノード
    # ------------------------------------------------------------------

    def init(self, conjecture: str, author: str) -> OperationResult:
        """証明を初期化し、ルートノード ``1`` を作成する

        Raises:
            AlreadyExistsError: 既に初期化済みの場合
        """
        conjecture = require_text(conjecture, "conjecture")
        author = require_text(author, "author")

        def plan(state: ProofState, now: datetime):
            if state.initialized:
                raise AlreadyExistsError(
                    f"proof in {self.proof_dir} is already initialized",
                    current_state="initialized",
                    requested=EventType.PROOF_INITIALIZED,
                )
            event = ProofInitializedEvent(
                timestamp=now,
                actor=author,
                payload=ProofInitializedPayload(conjecture=conjecture, author=author),
            )
            return event, str(NodeID.root())

        return self._commit("init", plan)

    def create_node(
        self,
        node_id: str | NodeID,
        node_type: str | NodeType,
        statement: str,
        inference: str | InferenceType = InferenceType.MODUS_PONENS,
        author: str = "system",
    ) -> OperationResult:
        """ノードを作成

        Raises:
            InvalidInputError: 不正なID・種別・推論規則、深さ/子数の上限超過
            ParentNotFoundError: 親ノードが存在しない場合
            AlreadyExistsError: 同じIDのノードが既に存在する場合
        """
        nid = NodeID.parse(node_id)
        kind = parse_enum(NodeType, node_type, ErrorCode.INVALID_TYPE)
        rule = parse_enum(InferenceType, inference, ErrorCode.INVALID_INFERENCE)
        statement = require_text(statement, "statement")
        author = require_text(author, "author")

        def plan(state: ProofState, now: datetime):
            self._require_initialized(state)
            if state.get_node(nid) is not None:
                raise AlreadyExistsError(
                    f"node {nid} already exists",
                    entity_id=str(nid),
                    current_state=state.get_node(nid).status,
                    requested=EventType.NODE_CREATED,
                )
            if nid.parent is None or state.get_node(nid.parent) is None:
                raise ParentNotFoundError(nid, nid.parent)
            self._check_shape(state, nid)
            event = NodeCreatedEvent(
                timestamp=now,
                actor=author,
                payload=NodeCreatedPayload(
                    node_id=str(nid),
                    node_type=kind,
                    statement=statement,
                    inference=rule,
                    author=author,
                ),
            )
            self._check(state, event)
            return event, str(nid)

        return self._commit("create_node", plan)

    def add_child(
        self,
        parent_id: str | NodeID,
        owner: str,
        statement: str,
        node_type: str | NodeType = NodeType.CLAIM,
        inference: str | InferenceType = InferenceType.MODUS_PONENS,
    ) -> OperationResult:
        """クレーム中の親ノードの下に、次の番号の子ノードを作成

        Raises:
            NotClaimHolderError / LeaseExpiredError: 親のリース保持者でない場合
        """
        parent = NodeID.parse(parent_id)
        owner = require_text(owner, "owner")
        kind = parse_enum(NodeType, node_type, ErrorCode.INVALID_TYPE)
        rule = parse_enum(InferenceType, inference, ErrorCode.INVALID_INFERENCE)
        statement = require_text(statement, "statement")

        def plan(state: ProofState, now: datetime):
            self._require_initialized(state)
            parent_node = self._require_node(state, parent)
            ensure_lease_holder(parent_node, owner, now, EventType.NODE_CREATED)
            child = self._next_child_id(state, parent)
            self._check_shape(state, child)
            event = NodeCreatedEvent(
                timestamp=now,
                actor=owner,
                payload=NodeCreatedPayload(
                    node_id=str(child),
                    node_type=kind,
                    statement=statement,
                    inference=rule,
                    author=owner,
                ),
            )
            self._check(state, event)
            return event, str(child)

        return self._commit("add_child", plan)

    @staticmethod
    def _next_child_id(state: ProofState, parent: NodeID) -> NodeID:
        children = state.children_of(parent)
        next_index = max((c.parts[-1] for c in children), default=0) + 1
        return parent.child(next_index)

    def allocate_child_id(self, parent_id: str | NodeID) -> NodeID:
        """親ノードの次の子ノードIDを返す（台帳には書き込まない）"""
        parent = NodeID.parse(parent_id)
        state = self.load_state()
        self._require_node(state, parent)
        return self._next_child_id(state, parent)

    def _node_event(
        self,
        operation: str,
        node_id: str | NodeID,
        build: Callable[[str, datetime], BaseEvent],
    ) -> OperationResult:
        """既存ノードに対する単一イベントの操作"""
        nid = NodeID.parse(node_id)

        def plan(state: ProofState, now: datetime):
            self._require_initialized(state)
            self._require_node(state, nid)
            event = build(str(nid), now)
            self._check(state, event)
            return event, str(nid)

        return self._commit(operation, plan)

    def claim_node(
        self, node_id: str | NodeID, owner: str, duration: float | timedelta | None = None
    ) -> OperationResult:
        """ノードをクレーム（リースを取得）

        未クレーム、またはリース期限切れのノードのみクレームできる。

        Args:
            node_id: ノードID
            owner: クレームする参加者
            duration: リース期間（秒またはtimedelta）。Noneの場合は設定値

        Raises:
            NodeAlreadyClaimedError: 有効なリースを持つ他者がいる場合
            NodeBlockedError: 保留中の定義要求がある場合
            TransitionError: 精緻化・受理済みなどクレームできない状態の場合
        """
        owner = require_text(owner, "owner")
        lease = self._lease_duration(duration)
        return self._node_event(
            "claim_node",
            node_id,
            lambda nid, now: NodeClaimedEvent(
                timestamp=now,
                actor=owner,
                payload=NodeClaimPayload(node_id=nid, owner=owner, expires_at=now + lease),
            ),
        )

    def refresh_claim(
        self, node_id: str | NodeID, owner: str, duration: float | timedelta | None = None
    ) -> OperationResult:
        """有効なリースを現在時刻から延長"""
        owner = require_text(owner, "owner")
        lease = self._lease_duration(duration)
        return self._node_event(
            "refresh_claim",
            node_id,
            lambda nid, now: NodeClaimRefreshedEvent(
                timestamp=now,
                actor=owner,
                payload=NodeClaimPayload(node_id=nid, owner=owner, expires_at=now + lease),
            ),
        )

    def release_node(self, node_id: str | NodeID, owner: str) -> OperationResult:
        """クレームを解放（リース保持者のみ、期限内に限る）"""
        owner = require_text(owner, "owner")
        return self._node_event(
            "release_node",
            node_id,
            lambda nid, now: NodeReleasedEvent(
                timestamp=now, actor=owner, payload=NodeOwnerPayload(node_id=nid, owner=owner)
            ),
        )

    def refine_node(
        self, node_id: str | NodeID, owner: str, note: str | None = None
    ) -> OperationResult:
        """作業を終えてノードを精緻化済みにする（リース保持者のみ）"""
        owner = require_text(owner, "owner")
        return self._node_event(
            "refine_node",
            node_id,
            lambda nid, now: NodeRefinedEvent(
                timestamp=now,
                actor=owner,
                payload=NodeOwnerPayload(node_id=nid, owner=owner, note=note),
            ),
        )

    def accept_node(
        self, node_id: str | NodeID, owner: str, note: str | None = None
    ) -> OperationResult:
        """ノードを受理する（リース保持者のみ）

        Raises:
            NodeBlockedError: 保留中の定義要求、または critical / major の
                オープンなチャレンジがある場合
        """
        owner = require_text(owner, "owner")
        return self._node_event(
            "accept_node",
            node_id,
            lambda nid, now: NodeAcceptedEvent(
                timestamp=now,
                actor=owner,
                payload=NodeOwnerPayload(node_id=nid, owner=owner, note=note),
            ),
        )

    def amend_node(self, node_id: str | NodeID, owner: str, statement: str) -> OperationResult:
        """ノードの主張を修正する（リース保持者のみ、履歴を残す）"""
        owner = require_text(owner, "owner")
        statement = require_text(statement, "statement")
        return self._node_event(
            "amend_node",
            node_id,
            lambda nid, now: NodeAmendedEvent(
                timestamp=now,
                actor=owner,
                payload=NodeAmendedPayload(node_id=nid, owner=owner, statement=statement),
            ),
        )

    def archive_node(
        self, node_id: str | NodeID, actor: str = "system", reason: str | None = None
    ) -> OperationResult:
        """ノードをアーカイブする（終端）

        オープンなチャレンジは superseded になる。
        """
        actor = require_text(actor, "actor")
        return self._node_event(
            "archive_node",
            node_id,
            lambda nid, now: NodeArchivedEvent(
                timestamp=now,
                actor=actor,
                payload=NodeArchivedPayload(node_id=nid, reason=reason),
            ),
        )

    # ------------------------------------------------------------------
    # 定義
    # ------------------------------------------------------------------

    def add_definition(self, name: str, content: str, added_by: str = "system") -> OperationResult:
        """定義を追加

        本文は入力どおりに保存する。同名の定義は allow_shadowing が有効な場合のみ追加できる。

        Raises:
            AlreadyExistsError: 同名の定義があり、シャドーイングが無効な場合
        """
        name = require_text(name, "name")
        require_text(content, "content")
        added_by = require_text(added_by, "added_by")
        definition_id = generate_event_id()
        digest = content_hash(content)

        def plan(state: ProofState, now: datetime):
            self._require_initialized(state)
            existing = state.definition_by_name(name)
            if existing is not None and not self.settings.definitions.allow_shadowing:
                raise AlreadyExistsError(
                    f"definition {name!r} already exists as {existing.id}",
                    entity_id=existing.id,
                    current_state="defined",
                    requested=EventType.DEF_ADDED,
                )
            event = DefAddedEvent(
                timestamp=now,
                actor=added_by,
                payload=DefAddedPayload(
                    definition_id=definition_id, name=name, content=content, content_hash=digest
                ),
            )
            self._check(state, event)
            return event, definition_id

        return self._commit("add_definition", plan)

    # ------------------------------------------------------------------
    # チャレンジ
    # ------------------------------------------------------------------

    def raise_challenge(
        self,
        node_id: str | NodeID,
        reason: str,
        target: str | ChallengeTarget = ChallengeTarget.STATEMENT,
        severity: str | ChallengeSeverity = ChallengeSeverity.MAJOR,
        raised_by: str = "system",
    ) -> OperationResult:
        """ノードにチャレンジを作成

        critical / major のチャレンジはノードを challenged にし、
        minor / note のチャレンジはノードの状態を変えずに記録する。

        Raises:
            ChallengeAlreadyOpenError: 既にオープンなチャレンジがある場合
            TransitionError: アーカイブ済みのノードの場合
        """
        nid = NodeID.parse(node_id)
        reason = require_text(reason, "reason")
        aspect = parse_enum(ChallengeTarget, target, ErrorCode.INVALID_TARGET)
        level = parse_enum(ChallengeSeverity, severity, ErrorCode.INVALID_SEVERITY)
        raised_by = require_text(raised_by, "raised_by")
        challenge_id = generate_event_id()

        def plan(state: ProofState, now: datetime):
            self._require_initialized(state)
            self._require_node(state, nid)
            event = ChallengeCreatedEvent(
                timestamp=now,
                actor=raised_by,
                payload=ChallengeCreatedPayload(
                    challenge_id=challenge_id,
                    node_id=str(nid),
                    target=aspect,
                    severity=level,
                    reason=reason,
                ),
            )
            self._check(state, event)
            return event, challenge_id

        return self._commit("raise_challenge", plan)

    def resolve_challenge(
        self,
        challenge_id: str,
        outcome: str | ChallengeOutcome,
        resolution: str | None = None,
        actor: str = "system",
    ) -> OperationResult:
        """チャレンジを解決し、critical / major なら対象ノードを認容または反駁にする

        Raises:
            ChallengeNotOpenError: オープンでないチャレンジの場合
        """
        result = parse_enum(ChallengeOutcome, outcome, ErrorCode.INVALID_OUTCOME)
        actor = require_text(actor, "actor")

        def plan(state: ProofState, now: datetime):
            self._require_initialized(state)
            challenge = find_challenge(state, challenge_id)
            event = ChallengeResolvedEvent(
                timestamp=now,
                actor=actor,
                payload=ChallengeResolvedPayload(
                    challenge_id=challenge.id, outcome=result, resolution=resolution
                ),
            )
            self._check(state, event)
            return event, challenge.id

        return self._commit("resolve_challenge", plan)

    def withdraw_challenge(
        self, challenge_id: str, reason: str | None = None, actor: str = "system"
    ) -> OperationResult:
        """チャレンジを取り下げ、対象ノードをチャレンジ前の状態に戻す"""
        actor = require_text(actor, "actor")

        def plan(state: ProofState, now: datetime):
            self._require_initialized(state)
            challenge = find_challenge(state, challenge_id)
            event = ChallengeWithdrawnEvent(
                timestamp=now,
                actor=actor,
                payload=ChallengeWithdrawnPayload(challenge_id=challenge.id, reason=reason),
            )
            self._check(state, event)
            return event, challenge.id

        return self._commit("withdraw_challenge", plan)

    # ------------------------------------------------------------------
    # 保留定義
    # ------------------------------------------------------------------

    def request_definition(
        self, term: str, node_id: str | NodeID, actor: str = "system"
    ) -> OperationResult:
        """ノードが必要とする未定義の用語の定義を要求

        Raises:
            NodeNotFoundError: 要求元ノードが存在しない場合
            AlreadyExistsError: 同じノードに保留中の要求がある場合
        """
        term = require_text(term, "term")
        nid = NodeID.parse(node_id)
        actor = require_text(actor, "actor")
        pending_def_id = generate_event_id()

        def plan(state: ProofState, now: datetime):
            self._require_initialized(state)
            self._require_node(state, nid)
            event = PendingDefCreatedEvent(
                timestamp=now,
                actor=actor,
                payload=PendingDefCreatedPayload(
                    pending_def_id=pending_def_id, term=term, node_id=str(nid)
                ),
            )
            self._check(state, event)
            return event, pending_def_id

        return self._commit("request_definition", plan)

    def resolve_pending_def(
        self, lookup: str, definition: str, actor: str = "system"
    ) -> OperationResult:
        """保留定義を既存の定義で解決

        Args:
            lookup: 保留定義の検索語（用語、ノードID、ID、IDの前方一致）
            definition: 定義IDまたは定義名

        Raises:
            InvalidInputError: 定義名が要求された用語と一致しない場合
            PendingDefNotPendingError: 既に解決・取消済みの場合
        """
        actor = require_text(actor, "actor")

        def plan(state: ProofState, now: datetime):
            self._require_initialized(state)
            pending = find_pending_def(state, lookup)
            found = find_definition(state, definition)
            if found.name.casefold() != pending.term.casefold():
                raise InvalidInputError(
                    f"definition {found.name!r} does not match requested term {pending.term!r}",
                    code=ErrorCode.TERM_MISMATCH,
                )
            event = PendingDefResolvedEvent(
                timestamp=now,
                actor=actor,
                payload=PendingDefResolvedPayload(
                    pending_def_id=pending.id, definition_id=found.id
                ),
            )
            self._check(state, event)
            return event, pending.id

        return self._commit("resolve_pending_def", plan)

    def cancel_pending_def(
        self, lookup: str, reason: str | None = None, actor: str = "system"
    ) -> OperationResult:
        """保留定義を取り消す（人間による却下）

        Raises:
            PendingDefNotPendingError: 既に解決・取消済みの場合
        """
        actor = require_text(actor, "actor")

        def plan(state: ProofState, now: datetime):
            self._require_initialized(state)
            pending = find_pending_def(state, lookup)
            event = PendingDefCancelledEvent(
                timestamp=now,
                actor=actor,
                payload=PendingDefCancelledPayload(pending_def_id=pending.id, reason=reason),
            )
            self._check(state, event)
            return event, pending.id

        return self._commit("cancel_pending_def", plan)

    reject_pending_def = cancel_pending_def

    # ------------------------------------------------------------------
    # 読み取り
    # ------------------------------------------------------------------

    def get_node(self, node_id: str | NodeID) -> NodeProjection:
        nid = NodeID.parse(node_id)
        return self._require_node(self.load_state(), nid)

    def list_nodes(self) -> list[NodeProjection]:
        """全ノードをNodeIDの数値順で返す"""
        return self.load_state().sorted_nodes()

    def list_node_ids(self) -> list[str]:
        return [str(n.id) for n in self.list_nodes()]

    def available_nodes(self, now: datetime | None = None) -> list[NodeProjection]:
        """クレーム可能なノード（未クレーム、またはリース期限切れ。ブロック中を除く）"""
        at = now or self.now()
        state = self.load_state()
        return [
            n
            for n in state.sorted_nodes()
            if n.effective_status(at) == NodeStatus.UNCLAIMED and not state.is_blocked(n.id)
        ]

    def blocked_nodes(self) -> list[NodeProjection]:
        """保留中の定義要求によりブロックされているノード"""
        state = self.load_state()
        return [state.nodes[str(nid)] for nid in state.blocked_nodes()]

    def list_challenges(
        self, status: str | ChallengeStatus | None = None
    ) -> list[ChallengeProjection]:
        challenges = list(self.load_state().challenges.values())
        if status is None:
            return challenges
        wanted = parse_enum(ChallengeStatus, status, ErrorCode.INVALID_STATUS)
        return [c for c in challenges if c.status == wanted]

    def get_challenge(self, lookup: str) -> ChallengeProjection:
        return find_challenge(self.load_state(), lookup)

    def list_definitions(self) -> list[DefinitionProjection]:
        return list(self.load_state().definitions.values())

    def get_definition(self, lookup: str) -> DefinitionProjection:
        """IDまたは名前で定義を取得"""
        return find_definition(self.load_state(), lookup)

    def get_definition_by_name(self, name: str) -> DefinitionProjection:
        """名前の完全一致（大文字小文字を区別）で定義を取得

        Raises:
            DefinitionNotFoundError: 見つからない場合
        """
        name = require_text(name, "name")
        found = self.load_state().definition_by_name(name)
        if found is None:
            raise DefinitionNotFoundError(name)
        return found

    def list_pending_defs(
        self, status: str | PendingDefStatus | None = None
    ) -> list[PendingDefProjection]:
        records = list(self.load_state().pending_defs.values())
        if status is None:
            return records
        wanted = parse_enum(PendingDefStatus, status, ErrorCode.INVALID_STATUS)
        return [p for p in records if p.status == wanted]

    def find_pending_def(self, lookup: str) -> PendingDefProjection:
        return find_pending_def(self.load_state(), lookup)

    def status_summary(self) -> dict[str, object]:
        """証明全体の集計"""
        state = self.load_state()
        now = self.now()
        return {
            "initialized": state.initialized,
            "conjecture": state.conjecture,
            "latest_seq": state.latest_seq,
            "nodes": {s.value: c for s, c in state.nodes_by_status(now).items()},
            "open_challenges": sum(1 for c in state.challenges.values() if c.is_open),
            "blocking_challenges": len(state.blocking_challenges()),
            "definitions": len(state.definitions),
            "pending_defs": sum(1 for p in state.pending_defs.values() if p.is_pending),
            "blocked_nodes": len(state.blocked_nodes()),
            "skipped_records": len(state.skipped),
        }
