"""イベントモデルのテスト"""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from proofforge.core.events import (
    EVENT_TYPE_MAP,
    BaseEvent,
    EventType,
    NodeClaimedEvent,
    NodeClaimPayload,
    NodeCreatedEvent,
    NodeCreatedPayload,
    compute_hash,
    generate_event_id,
    parse_event,
    serialize_value,
)
from proofforge.core.types import InferenceType, NodeType


def _node_created(**overrides) -> NodeCreatedEvent:
    payload = {
        "node_id": "1.1",
        "node_type": NodeType.CLAIM,
        "statement": "x > 0",
        "inference": InferenceType.MODUS_PONENS,
        "author": "alice",
    }
    payload.update(overrides)
    return NodeCreatedEvent(actor="alice", payload=NodeCreatedPayload(**payload))


class TestEventCatalog:
    """イベントカタログのテスト"""

    def test_every_event_type_is_registered(self):
        """全てのイベント種別にクラスが登録されている"""
        assert set(EVENT_TYPE_MAP) == set(EventType)

    def test_registered_classes_declare_their_type(self):
        """登録クラスの既定typeがキーと一致する"""
        for event_type, event_class in EVENT_TYPE_MAP.items():
            assert event_class.model_fields["type"].default == event_type


class TestBaseEvent:
    """BaseEventのテスト"""

    def test_event_id_is_ulid(self):
        """イベントIDはULID形式（26文字）"""
        assert len(generate_event_id()) == 26

    def test_event_is_immutable(self):
        """イベントはイミュータブル"""
        event = _node_created()
        with pytest.raises(ValidationError):
            event.actor = "mallory"

    def test_naive_timestamp_becomes_utc(self):
        """タイムゾーンなしの時刻はUTCとして扱う"""
        event = NodeClaimedEvent(
            timestamp=datetime(2026, 1, 1, 9, 0),
            payload=NodeClaimPayload(
                node_id="1", owner="alice", expires_at=datetime(2026, 1, 1, 9, 5, tzinfo=UTC)
            ),
        )
        assert event.timestamp.tzinfo is not None

    def test_hash_is_deterministic(self):
        """同じ内容のイベントは同じハッシュ"""
        event = _node_created()
        copy = parse_event(event.model_dump(mode="json"))
        assert copy.hash == event.hash

    def test_hash_changes_with_payload(self):
        """ペイロードが違えばハッシュも違う"""
        event = _node_created()
        other = event.model_copy(
            update={"payload": event.payload.model_copy(update={"statement": "x < 0"})}
        )
        assert other.hash != event.hash

    def test_payload_dict_is_json_compatible(self):
        """payload_dictは列挙型・日時をプリミティブに変換する"""
        event = _node_created()
        payload = event.payload_dict()
        assert payload["node_type"] == "claim"
        assert payload["inference"] == "modus_ponens"


class TestPayloadValidation:
    """ペイロードのスキーマ検証"""

    def test_node_id_is_normalized(self):
        """ノードIDは正規化された文字列として保持する"""
        event = _node_created(node_id=" 1.2 ")
        assert event.payload.node_id == "1.2"

    def test_invalid_node_id_rejected(self):
        """不正なノードIDはValidationError"""
        with pytest.raises(ValidationError):
            _node_created(node_id="1.x")

    def test_empty_statement_rejected(self):
        with pytest.raises(ValidationError):
            _node_created(statement="")

    def test_parse_known_type_with_bad_payload_raises(self):
        """既知の種別でスキーマに合わないペイロードはValidationError"""
        data = {"type": "node.claimed", "payload": {"node_id": "1"}}
        with pytest.raises(ValidationError):
            parse_event(data)

    def test_extra_payload_fields_ignored(self):
        """新しいバージョンが追加したフィールドは無視される"""
        data = {
            "type": "node.released",
            "timestamp": "2026-01-01T09:00:00+00:00",
            "payload": {"node_id": "1", "owner": "alice", "added_later": True},
        }
        event = parse_event(data)
        assert event.payload.owner == "alice"

    def test_parse_from_json_string(self):
        """JSON文字列からパースできる"""
        event = _node_created()
        parsed = parse_event(event.to_jsonl())
        assert isinstance(parsed, NodeCreatedEvent)
        assert parsed.payload.statement == "x > 0"

    def test_parse_rejects_non_object(self):
        """JSONオブジェクト以外はTypeError"""
        with pytest.raises(TypeError):
            parse_event("[1, 2, 3]")

    def test_naive_lease_expiry_becomes_utc(self):
        """ペイロード内のタイムゾーンなしの時刻もUTCとして読む"""
        data = {
            "type": "node.claimed",
            "timestamp": "2026-01-01T09:00:00",
            "payload": {"node_id": "1", "owner": "alice", "expires_at": "2030-01-01T00:00:00"},
        }

        event = parse_event(data)

        assert event.timestamp.tzinfo == UTC
        assert event.payload.expires_at == datetime(2030, 1, 1, tzinfo=UTC)
        assert event.payload.expires_at > event.timestamp


class TestComputeHash:
    """compute_hash のテスト"""

    def test_hash_field_excluded(self):
        """hashフィールドは計算対象外"""
        data = {"a": 1, "b": "x"}
        assert compute_hash(data) == compute_hash({**data, "hash": "ignored"})

    def test_key_order_does_not_matter(self):
        """JCS正規化によりキー順に依存しない"""
        assert compute_hash({"a": 1, "b": 2}) == compute_hash({"b": 2, "a": 1})

    def test_unsupported_type_raises(self):
        with pytest.raises(TypeError):
            serialize_value(object())

    def test_nan_rejected(self):
        with pytest.raises(ValueError):
            serialize_value(float("nan"))

    def test_base_event_roundtrip_type(self):
        """BaseEventはEventTypeまたは文字列のtypeを持てる"""
        event = BaseEvent(type=EventType.DEF_ADDED, payload={"x": 1})
        assert event.type_value == "def.added"
