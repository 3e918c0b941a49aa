"""NodeID のテスト"""

import pytest

from proofforge.core.errors import ErrorCode, InvalidInputError
from proofforge.core.types import (
    ChallengeSeverity,
    NodeID,
    NodeType,
    parse_enum,
)


class TestNodeIDParse:
    """NodeID.parse のテスト"""

    @pytest.mark.parametrize("text", ["1", "1.1", "1.2.3", " 1.10 "])
    def test_parse_valid(self, text):
        """正しいドット区切りパスをパースできる"""
        node_id = NodeID.parse(text)
        assert str(node_id) == text.strip()

    @pytest.mark.parametrize("text", ["", "   ", "0", "2", "1.0", "1..2", "1.a", "-1", "1.-2", "1.２"])
    def test_parse_invalid(self, text):
        """不正な構文はInvalidInputError"""
        with pytest.raises(InvalidInputError) as exc_info:
            NodeID.parse(text)
        assert exc_info.value.code == ErrorCode.INVALID_NODE_ID

    def test_parse_returns_same_instance_for_node_id(self):
        """NodeIDを渡すとそのまま返す"""
        node_id = NodeID.parse("1.2")
        assert NodeID.parse(node_id) is node_id


class TestNodeIDTree:
    """木構造の操作"""

    def test_root(self):
        """ルートは 1 で親を持たない"""
        root = NodeID.root()
        assert str(root) == "1"
        assert root.is_root
        assert root.parent is None
        assert root.depth == 1

    def test_parent_removes_last_segment(self):
        """親は最後のセグメントを除いたパス"""
        assert NodeID.parse("1.2.3").parent == NodeID.parse("1.2")

    def test_child_appends_segment(self):
        """子は末尾にセグメントを追加する"""
        assert NodeID.parse("1.2").child(4) == NodeID.parse("1.2.4")

    def test_is_ancestor_of(self):
        """祖先判定"""
        root = NodeID.root()
        assert root.is_ancestor_of(NodeID.parse("1.1.1"))
        assert not NodeID.parse("1.1").is_ancestor_of(NodeID.parse("1.10"))
        assert not root.is_ancestor_of(root)

    def test_numeric_ordering(self):
        """セグメントの数値順で並ぶ"""
        ids = [NodeID.parse(s) for s in ["1.10", "1.2", "1", "1.1.5", "1.1"]]
        assert [str(i) for i in sorted(ids)] == ["1", "1.1", "1.1.5", "1.2", "1.10"]

    def test_hashable(self):
        """辞書のキーに使える"""
        assert {NodeID.parse("1.1"): "a"}[NodeID.parse("1.1")] == "a"


class TestParseEnum:
    """parse_enum のテスト"""

    def test_parse_case_insensitive(self):
        assert parse_enum(NodeType, " Claim ", ErrorCode.INVALID_TYPE) == NodeType.CLAIM

    def test_invalid_value_lists_choices(self):
        """不正な値は選択肢を含むエラー"""
        with pytest.raises(InvalidInputError) as exc_info:
            parse_enum(ChallengeSeverity, "fatal", ErrorCode.INVALID_SEVERITY)
        assert exc_info.value.code == ErrorCode.INVALID_SEVERITY
        assert "critical" in exc_info.value.message

    def test_blocking_severity(self):
        """critical / major はブロッキング"""
        assert ChallengeSeverity.CRITICAL.is_blocking
        assert ChallengeSeverity.MAJOR.is_blocking
        assert not ChallengeSeverity.MINOR.is_blocking
        assert not ChallengeSeverity.NOTE.is_blocking
