"""UnknownEvent 前方互換のテスト

未知のイベントタイプを例外ではなくUnknownEventとして読み込み、投影では読み飛ばす。
"""

from proofforge.core.events import BaseEvent, UnknownEvent, parse_event
from proofforge.core.events.base import MAX_ORIGINAL_DATA_SIZE
from proofforge.core.state import ProofProjector


class TestParseEventForwardCompatibility:
    """parse_event の前方互換性テスト"""

    def test_parse_unknown_event_type_returns_unknown_event(self):
        """未知のイベントタイプはUnknownEventとして返す（例外にしない）"""
        # Arrange
        data = {
            "seq": 7,
            "type": "future.unknown.event",
            "actor": "system",
            "payload": {"message": "from the future"},
        }

        # Act
        event = parse_event(data)

        # Assert
        assert isinstance(event, UnknownEvent)
        assert isinstance(event, BaseEvent)
        assert event.type == "future.unknown.event"
        assert event.seq == 7
        assert event.payload["message"] == "from the future"
        assert event.original_data["type"] == "future.unknown.event"

    def test_missing_type_becomes_unknown(self):
        """typeが無いレコードもUnknownEvent"""
        event = parse_event({"payload": {}})
        assert isinstance(event, UnknownEvent)
        assert event.type == "unknown"

    def test_original_data_size_limited(self):
        """巨大なoriginal_dataは切り詰められる"""
        # Arrange
        huge = {"type": "future.big", "payload": {"blob": "x" * (MAX_ORIGINAL_DATA_SIZE + 10)}}

        # Act
        event = parse_event(huge)

        # Assert
        assert event.original_data["_truncated"] is True
        assert event.original_data["type"] == "future.big"


class TestUnknownEventProjection:
    """投影での扱い"""

    def test_unknown_event_is_skipped(self):
        """未知のイベントは読み飛ばされ、シーケンス番号は進む"""
        # Arrange
        projector = ProofProjector()
        raw = '{"seq": 1, "type": "proof.tagged", "payload": {"tag": "v2"}}'

        # Act
        applied = projector.apply_record(1, raw)

        # Assert
        assert applied is False
        assert projector.state.latest_seq == 1
        assert projector.state.skipped[0].kind == "proof.tagged"
        assert projector.state.skipped[0].reason == "unknown event type"
