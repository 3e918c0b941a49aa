"""状態機械 (State Machines)

ノード・チャレンジ・保留定義の状態遷移を管理。
リースの所有権チェックもここで強制する。

サービス層の事前検証と投影のリプレイは同じ状態機械を使う。
リプレイ時の「現在時刻」はイベントのタイムスタンプである。
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from ..errors import (
    ChallengeNotOpenError,
    LeaseExpiredError,
    NodeAlreadyClaimedError,
    NotClaimHolderError,
    PendingDefNotPendingError,
    StateConflictError,
)
from ..events import BaseEvent, EventType
from ..ledger.projections import (
    ChallengeProjection,
    ChallengeStatus,
    NodeProjection,
    NodeStatus,
    PendingDefProjection,
    PendingDefStatus,
)
from ..types import ChallengeOutcome


class TransitionError(StateConflictError):
    """不正な状態遷移"""

    pass


@dataclass
class Transition:
    """状態遷移の定義

    to_state に関数を渡すと、イベントから遷移先を決める。
    """

    from_state: Enum
    to_state: Enum | Callable[[BaseEvent], Enum]
    event_type: EventType
    guard: Callable[..., bool] | None = None


class StateMachine:
    """汎用状態機械基底クラス"""

    def __init__(self, initial_state: Enum, transitions: list[Transition], entity_id: str = ""):
        self.current_state = initial_state
        self.entity_id = entity_id
        self._transitions = {(t.from_state, t.event_type): t for t in transitions}

    def get_valid_events(self) -> list[EventType]:
        """現在の状態から遷移可能なイベント一覧を取得"""
        return [
            event_type for (state, event_type) in self._transitions if state == self.current_state
        ]

    def transition(self, event: BaseEvent) -> Enum:
        """イベントを適用して状態遷移

        Args:
            event: 適用するイベント

        Returns:
            遷移後の状態

        Raises:
            TransitionError: 不正な遷移の場合
        """
        event_type = EventType(event.type)
        transition = self._transitions.get((self.current_state, event_type))

        if not transition:
            valid = [e.value for e in self.get_valid_events()]
            raise TransitionError(
                f"Invalid transition: {self.current_state.value} + {event_type.value}. "
                f"Valid events: {valid}",
                entity_id=self.entity_id,
                current_state=self.current_state,
                requested=event_type,
            )

        if transition.guard and not transition.guard(event):
            raise TransitionError(
                f"Guard condition failed for {event_type.value}",
                entity_id=self.entity_id,
                current_state=self.current_state,
                requested=event_type,
            )

        to_state = transition.to_state
        self.current_state = to_state(event) if callable(to_state) else to_state
        return self.current_state


# リース保持者のみが行える操作
HOLDER_EVENTS = frozenset(
    {
        EventType.NODE_RELEASED,
        EventType.NODE_CLAIM_REFRESHED,
        EventType.NODE_REFINED,
        EventType.NODE_ACCEPTED,
        EventType.NODE_AMENDED,
    }
)

# チャレンジを受け付ける状態（オープンなチャレンジがあるノードは投影側で弾く）
CHALLENGEABLE_STATES = tuple(
    state for state in NodeStatus if state not in (NodeStatus.CHALLENGED, NodeStatus.ARCHIVED)
)


def ensure_claimable(node: NodeProjection, now: datetime) -> None:
    """有効なリースを持つ他者がいないことを確認

    Raises:
        NodeAlreadyClaimedError: 有効なリースが存在する場合
    """
    if node.is_lease_valid(now):
        raise NodeAlreadyClaimedError(node.id, node.owner, node.lease_expires_at)


def ensure_lease_holder(
    node: NodeProjection, owner: str, now: datetime, requested: EventType
) -> None:
    """操作者が有効なリースの保持者であることを確認

    Raises:
        TransitionError: ノードがクレームされていない場合
        NotClaimHolderError: 他者がクレームしている場合
        LeaseExpiredError: 保持者だがリースが期限切れの場合
    """
    if node.status != NodeStatus.CLAIMED:
        raise TransitionError(
            f"node {node.id} is {node.status.value}, not claimed",
            entity_id=str(node.id),
            current_state=node.status,
            requested=requested,
        )
    if node.owner != owner:
        raise NotClaimHolderError(node.id, node.effective_owner(now), owner, requested)
    if not node.is_lease_valid(now):
        raise LeaseExpiredError(node.id, owner, node.lease_expires_at, requested)


class NodeStateMachine(StateMachine):
    """ノード状態機械

    状態遷移:
    - UNCLAIMED -> CLAIMED (クレーム。期限切れのCLAIMEDはUNCLAIMEDとして扱う)
    - CLAIMED -> CLAIMED (リース延長、主張の修正)
    - CLAIMED -> UNCLAIMED (解放)
    - CLAIMED -> REFINED / ACCEPTED (精緻化完了 / 受理)
    - CHALLENGED と ARCHIVED 以外 -> CHALLENGED (チャレンジ作成)
    - CHALLENGED -> ADMITTED / REFUTED (チャレンジ解決)
    - CHALLENGED -> チャレンジ前の状態 (取り下げ)
    - ARCHIVED 以外 -> ARCHIVED (終端)
    """

    def __init__(self, node: NodeProjection, now: datetime):
        self.node = node
        self.now = now

        transitions = [
            Transition(NodeStatus.UNCLAIMED, NodeStatus.CLAIMED, EventType.NODE_CLAIMED),
            Transition(NodeStatus.CLAIMED, NodeStatus.CLAIMED, EventType.NODE_CLAIM_REFRESHED),
            Transition(NodeStatus.CLAIMED, NodeStatus.CLAIMED, EventType.NODE_AMENDED),
            Transition(NodeStatus.CLAIMED, NodeStatus.UNCLAIMED, EventType.NODE_RELEASED),
            Transition(NodeStatus.CLAIMED, NodeStatus.REFINED, EventType.NODE_REFINED),
            Transition(NodeStatus.CLAIMED, NodeStatus.ACCEPTED, EventType.NODE_ACCEPTED),
            Transition(
                NodeStatus.CHALLENGED, self._resolution_state, EventType.CHALLENGE_RESOLVED
            ),
            Transition(
                NodeStatus.CHALLENGED, self._restored_state, EventType.CHALLENGE_WITHDRAWN
            ),
        ]
        transitions += [
            Transition(state, NodeStatus.CHALLENGED, EventType.CHALLENGE_CREATED)
            for state in CHALLENGEABLE_STATES
        ]
        transitions += [
            Transition(state, NodeStatus.ARCHIVED, EventType.NODE_ARCHIVED)
            for state in NodeStatus
            if state != NodeStatus.ARCHIVED
        ]

        super().__init__(node.effective_status(now), transitions, entity_id=str(node.id))

    @staticmethod
    def _resolution_state(event: BaseEvent) -> NodeStatus:
        if event.payload.outcome == ChallengeOutcome.ADMITTED:
            return NodeStatus.ADMITTED
        return NodeStatus.REFUTED

    def _restored_state(self, event: BaseEvent) -> NodeStatus:
        return self.node.status_before_challenge or NodeStatus.UNCLAIMED

    def transition(self, event: BaseEvent) -> Enum:
        """所有権を確認してから状態遷移

        Raises:
            NodeAlreadyClaimedError: 有効なリースがあるノードへのクレーム
            NotClaimHolderError: 保持者以外による操作
            LeaseExpiredError: 期限切れの保持者による操作
            TransitionError: その他の不正な遷移
        """
        event_type = EventType(event.type)
        if event_type == EventType.NODE_CLAIMED:
            ensure_claimable(self.node, self.now)
        elif event_type in HOLDER_EVENTS:
            ensure_lease_holder(self.node, event.payload.owner, self.now, event_type)
        return super().transition(event)


class ChallengeStateMachine(StateMachine):
    """チャレンジ状態機械

    状態遷移:
    - OPEN -> RESOLVED (解決)
    - OPEN -> WITHDRAWN (取り下げ)
    - OPEN -> SUPERSEDED (対象ノードのアーカイブ)
    """

    def __init__(self, challenge: ChallengeProjection):
        transitions = [
            Transition(ChallengeStatus.OPEN, ChallengeStatus.RESOLVED, EventType.CHALLENGE_RESOLVED),
            Transition(
                ChallengeStatus.OPEN, ChallengeStatus.WITHDRAWN, EventType.CHALLENGE_WITHDRAWN
            ),
            Transition(ChallengeStatus.OPEN, ChallengeStatus.SUPERSEDED, EventType.NODE_ARCHIVED),
        ]
        super().__init__(challenge.status, transitions, entity_id=challenge.id)

    def transition(self, event: BaseEvent) -> Enum:
        if self.current_state != ChallengeStatus.OPEN:
            raise ChallengeNotOpenError(self.entity_id, self.current_state, EventType(event.type))
        return super().transition(event)


class PendingDefStateMachine(StateMachine):
    """保留定義状態機械

    状態遷移:
    - PENDING -> RESOLVED (定義による解決)
    - PENDING -> CANCELLED (人間による却下)

    終端状態への再適用はエラーであり、冪等な成功にはならない。
    """

    def __init__(self, pending_def: PendingDefProjection):
        transitions = [
            Transition(
                PendingDefStatus.PENDING, PendingDefStatus.RESOLVED, EventType.PENDING_DEF_RESOLVED
            ),
            Transition(
                PendingDefStatus.PENDING,
                PendingDefStatus.CANCELLED,
                EventType.PENDING_DEF_CANCELLED,
            ),
        ]
        super().__init__(pending_def.status, transitions, entity_id=pending_def.id)

    def transition(self, event: BaseEvent) -> Enum:
        if self.current_state != PendingDefStatus.PENDING:
            raise PendingDefNotPendingError(
                self.entity_id, self.current_state, EventType(event.type)
            )
        return super().transition(event)
