"""投影 (Projector) のテスト"""

import json
from datetime import UTC, datetime, timedelta

import pytest

from proofforge.core.errors import NodeAlreadyClaimedError
from proofforge.core.events import (
    NodeClaimedEvent,
    NodeClaimPayload,
    NodeCreatedEvent,
    NodeCreatedPayload,
    ProofInitializedEvent,
    ProofInitializedPayload,
)
from proofforge.core.ledger import ChallengeStatus, Ledger, NodeStatus, ProofState
from proofforge.core.state import ProofProjector, build_proof_state, project
from proofforge.core.types import InferenceType, NodeType

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


def _record(seq: int, event) -> tuple[int, str]:
    data = event.model_dump(mode="json")
    data["seq"] = seq
    return seq, json.dumps(data)


def _init(seq: int = 1):
    return _record(
        seq,
        ProofInitializedEvent(
            timestamp=T0,
            actor="alice",
            payload=ProofInitializedPayload(conjecture="1 + 1 = 2", author="alice"),
        ),
    )


def _claim(seq: int, owner: str, at: datetime, lease: int = 60):
    return _record(
        seq,
        NodeClaimedEvent(
            timestamp=at,
            actor=owner,
            payload=NodeClaimPayload(
                node_id="1", owner=owner, expires_at=at + timedelta(seconds=lease)
            ),
        ),
    )


class TestProjectorBasics:
    """基本的な畳み込み"""

    def test_empty_ledger_is_uninitialized(self):
        state = build_proof_state([])

        assert not state.initialized
        assert state.nodes == {}
        assert state.latest_seq == 0

    def test_initialization_creates_root(self):
        """初期化イベントでルートノード 1 ができる"""
        state = build_proof_state([_init()])

        assert state.initialized
        assert state.conjecture == "1 + 1 = 2"
        root = state.get_node("1")
        assert root is not None
        assert root.statement == "1 + 1 = 2"
        assert root.status == NodeStatus.UNCLAIMED

    def test_handlers_cover_catalog(self):
        """全イベント種別にハンドラがある（生成時に検査される）"""
        ProofProjector()

    def test_replay_uses_event_timestamp(self):
        """リース期限はイベント時刻で判定される"""
        # Arrange: alice のリースが切れた後に bob がクレームする
        records = [
            _init(),
            _claim(2, "alice", T0, lease=10),
            _claim(3, "bob", T0 + timedelta(seconds=30)),
        ]

        # Act
        state = build_proof_state(records)

        # Assert
        root = state.get_node("1")
        assert root.owner == "bob"
        assert state.skipped == []


class TestProjectorTolerance:
    """不正なレコードの読み飛ばし"""

    def test_malformed_payload_is_skipped_and_later_records_apply(self):
        """スキーマに合わないレコードを読み飛ばし、後続は適用する"""
        # Arrange
        bad = json.dumps({"seq": 2, "type": "node.created", "payload": {"node_id": "1.1"}})
        good = _record(
            3,
            NodeCreatedEvent(
                timestamp=T0,
                actor="alice",
                payload=NodeCreatedPayload(
                    node_id="1.1",
                    node_type=NodeType.CLAIM,
                    statement="step",
                    inference=InferenceType.MODUS_PONENS,
                    author="alice",
                ),
            ),
        )

        # Act
        state = build_proof_state([_init(), (2, bad), good])

        # Assert
        assert state.get_node("1.1") is not None
        assert state.latest_seq == 3
        assert len(state.skipped) == 1
        assert state.skipped[0].seq == 2
        assert state.skipped[0].kind == "node.created"

    def test_non_json_line_is_skipped(self, caplog):
        """JSONでない行は警告して読み飛ばす"""
        with caplog.at_level("WARNING"):
            state = build_proof_state([_init(), (2, "{{{ not json")])

        assert state.initialized
        assert state.skipped[0].kind == "unparseable"
        assert "seq=2" in caplog.text

    def test_non_object_line_is_skipped(self):
        state = build_proof_state([(1, "[1, 2, 3]")])

        assert state.skipped[0].kind == "unparseable"
        assert not state.initialized

    def test_second_claim_is_skipped_first_wins(self):
        """有効なリース中の2つ目のクレームは読み飛ばされ、先の方が優先される"""
        # Arrange
        records = [_init(), _claim(2, "alice", T0), _claim(3, "bob", T0 + timedelta(seconds=1))]

        # Act
        state = build_proof_state(records)

        # Assert
        assert state.get_node("1").owner == "alice"
        assert [s.seq for s in state.skipped] == [3]
        assert "alice" in state.skipped[0].reason

    def test_event_before_initialization_is_skipped(self):
        """初期化前のノード作成は読み飛ばす"""
        record = _record(
            1,
            NodeCreatedEvent(
                timestamp=T0,
                actor="alice",
                payload=NodeCreatedPayload(
                    node_id="1.1",
                    node_type=NodeType.CLAIM,
                    statement="s",
                    inference=InferenceType.ASSUMPTION,
                    author="alice",
                ),
            ),
        )

        state = build_proof_state([record])

        assert state.nodes == {}
        assert state.skipped[0].kind == "node.created"

    def test_second_initialization_is_skipped(self):
        state = build_proof_state([_init(1), _init(2)])

        assert state.initialized
        assert [s.seq for s in state.skipped] == [2]


class TestCorruptHistoricalRecords:
    """壊れた過去のレコードがあっても後続の投影と追記が続けられる"""

    def test_naive_lease_expiry_is_read_as_utc(self, proof, clock):
        """タイムゾーンなしのリース期限はUTCとして扱い、リース判定で落ちない"""
        # Arrange
        for owner in ("alice", "bob"):
            proof.ledger.append(
                "node.claimed",
                {"node_id": "1", "owner": owner, "expires_at": "2030-01-01T00:00:00"},
                actor=owner,
                timestamp=clock(),
            )

        # Act
        state = project(proof.ledger)

        # Assert
        node = state.get_node("1")
        assert node.owner == "alice"
        assert node.lease_expires_at == datetime(2030, 1, 1, tzinfo=UTC)
        assert [s.seq for s in state.skipped] == [3]
        with pytest.raises(NodeAlreadyClaimedError):
            proof.claim_node("1", "carol")

    def test_deeply_nested_line_is_skipped(self, proof, caplog):
        """入れ子が深すぎて復号できない行は読み飛ばし、その後も追記できる"""
        # Arrange
        with open(proof.ledger.path, "a", encoding="utf-8") as f:
            f.write("[" * 100000 + "]" * 100000 + "\n")

        # Act
        with caplog.at_level("WARNING"):
            state = project(proof.ledger)
        result = proof.create_node("1.1", "claim", "written after the bad record")

        # Assert
        assert state.initialized
        assert [(s.seq, s.kind) for s in state.skipped] == [(2, "unparseable")]
        assert "seq=2" in caplog.text
        assert result.seq == 3
        assert proof.get_node("1.1").statement == "written after the bad record"
        assert proof.ledger.verify_chain() == (False, "Unparseable record at seq 2")


class TestProjectorCheck:
    """事前検証用の check"""

    def test_check_raises_instead_of_skipping(self):
        # Arrange
        projector = ProofProjector()
        for seq, raw in [_init(), _claim(2, "alice", T0)]:
            projector.apply_record(seq, raw)
        _, raw = _claim(3, "bob", T0 + timedelta(seconds=1))
        event = NodeClaimedEvent.model_validate(
            {k: v for k, v in json.loads(raw).items() if k != "hash"}
        )

        # Act & Assert
        with pytest.raises(NodeAlreadyClaimedError) as exc_info:
            projector.check(event)
        assert exc_info.value.owner == "alice"


class TestProjectionDeterminism:
    """投影の決定性"""

    def test_same_ledger_gives_same_state(self, refined_node):
        """同じ台帳を2回投影すると同じ状態になる"""
        # Arrange
        refined_node.raise_challenge("1.1", "gap in the argument", raised_by="bob")
        refined_node.add_definition("cyclic", "generated by one element", added_by="alice")
        ledger = refined_node.ledger

        # Act
        first = project(ledger)
        second = project(ledger)

        # Assert
        assert isinstance(first, ProofState)
        assert first.fingerprint() == second.fingerprint()
        assert first.to_dict() == second.to_dict()

    def test_prefix_projection_is_stable(self, refined_node):
        """台帳の同じ範囲からの投影は後の追記に影響されない"""
        # Arrange
        ledger: Ledger = refined_node.ledger
        prefix = list(ledger.records())
        before = build_proof_state(prefix).fingerprint()

        # Act
        refined_node.raise_challenge("1.1", "unclear", raised_by="bob")

        # Assert
        assert build_proof_state(prefix).fingerprint() == before
        assert project(ledger).fingerprint() != before


class TestArchiveProjection:
    """アーカイブの投影"""

    def test_archive_supersedes_open_challenge(self, refined_node):
        """アーカイブでオープンなチャレンジは superseded になる"""
        # Arrange
        result = refined_node.raise_challenge("1.1", "wrong lemma", raised_by="bob")

        # Act
        refined_node.archive_node("1.1", actor="alice", reason="replaced")

        # Assert
        state = project(refined_node.ledger)
        assert state.get_node("1.1").status == NodeStatus.ARCHIVED
        challenge = state.challenges[result.entity_id]
        assert challenge.status == ChallengeStatus.SUPERSEDED
        assert challenge.closed_by == "alice"
        assert state.open_challenge_for("1.1") is None
