"""保留定義のテスト"""

import pytest

from proofforge.core.errors import (
    AlreadyExistsError,
    DefinitionNotFoundError,
    ErrorCode,
    InvalidInputError,
    NodeBlockedError,
    NodeNotFoundError,
    PendingDefNotFoundError,
    PendingDefNotPendingError,
)
from proofforge.core.ledger import NodeStatus, PendingDefStatus
from proofforge.core.types import NodeID


@pytest.fixture
def nodes(proof):
    """子ノード 1.1, 1.2 を持つ証明"""
    proof.create_node("1.1", "claim", "G has an element of order p")
    proof.create_node("1.2", "claim", "The kernel is trivial")
    return proof


class TestRequestDefinition:
    """定義の要求"""

    def test_request(self, nodes, clock):
        result = nodes.request_definition("kernel", "1.2", actor="alice")

        pending = nodes.find_pending_def(result.entity_id)
        assert pending.term == "kernel"
        assert pending.node_id == NodeID.parse("1.2")
        assert pending.requested_by == "alice"
        assert pending.created_at == clock()
        assert pending.status == PendingDefStatus.PENDING

    def test_one_pending_request_per_node(self, nodes):
        """同じノードの保留中の要求は1件まで"""
        nodes.request_definition("kernel", "1.2")

        with pytest.raises(AlreadyExistsError):
            nodes.request_definition("homomorphism", "1.2")

    def test_new_request_after_cancel(self, nodes):
        """取り消し後は同じノードから再要求できる"""
        first = nodes.request_definition("kernel", "1.2")
        nodes.cancel_pending_def(first.entity_id)

        second = nodes.request_definition("kernel", "1.2")

        assert second.entity_id != first.entity_id
        assert nodes.find_pending_def("kernel").id == second.entity_id

    def test_unknown_node(self, nodes):
        with pytest.raises(NodeNotFoundError):
            nodes.request_definition("kernel", "1.7")

    def test_blank_term(self, nodes):
        with pytest.raises(InvalidInputError):
            nodes.request_definition("  ", "1.2")


class TestPendingDefLookup:
    """保留定義の検索順"""

    def test_by_term(self, nodes):
        result = nodes.request_definition("kernel", "1.2")

        assert nodes.find_pending_def("kernel").id == result.entity_id

    def test_by_node_id(self, nodes):
        result = nodes.request_definition("kernel", "1.2")

        assert nodes.find_pending_def("1.2").id == result.entity_id

    def test_term_takes_precedence_over_node_id(self, nodes):
        """用語の完全一致がノードIDより優先される"""
        # Arrange: 用語 "1.2" をノード 1.1 が要求し、ノード 1.2 は別の用語を要求
        by_term = nodes.request_definition("1.2", "1.1")
        nodes.request_definition("kernel", "1.2")

        # Act & Assert
        assert nodes.find_pending_def("1.2").id == by_term.entity_id

    def test_by_exact_id_and_prefix(self, nodes):
        result = nodes.request_definition("kernel", "1.2")
        pending_id = result.entity_id

        assert nodes.find_pending_def(pending_id).id == pending_id
        assert nodes.find_pending_def(pending_id[:-3].lower()).id == pending_id

    def test_case_insensitive_term_is_last_resort(self, nodes):
        result = nodes.request_definition("Kernel", "1.2")

        assert nodes.find_pending_def("KERNEL").id == result.entity_id

    def test_not_found(self, nodes):
        with pytest.raises(PendingDefNotFoundError) as exc_info:
            nodes.find_pending_def("cokernel")
        assert exc_info.value.code == ErrorCode.PENDING_DEF_NOT_FOUND

    def test_blank_lookup(self, nodes):
        with pytest.raises(InvalidInputError):
            nodes.find_pending_def("")


class TestResolvePendingDef:
    """定義による解決"""

    def test_resolve_with_matching_definition(self, nodes):
        # Arrange
        pending = nodes.request_definition("kernel", "1.2").entity_id
        definition = nodes.add_definition("kernel", "ker f = {g | f(g) = e}").entity_id

        # Act
        nodes.resolve_pending_def("kernel", "kernel", actor="alice")

        # Assert
        resolved = nodes.find_pending_def(pending)
        assert resolved.status == PendingDefStatus.RESOLVED
        assert resolved.resolved_by == definition
        assert resolved.closed_at is not None

    def test_definition_name_match_ignores_case(self, nodes):
        nodes.request_definition("kernel", "1.2")
        definition = nodes.add_definition("Kernel", "ker f").entity_id

        nodes.resolve_pending_def("kernel", definition)

        assert nodes.find_pending_def("kernel").resolved_by == definition

    def test_term_mismatch(self, nodes):
        """用語と一致しない定義では解決できない"""
        nodes.request_definition("kernel", "1.2")
        nodes.add_definition("image", "im f")

        with pytest.raises(InvalidInputError) as exc_info:
            nodes.resolve_pending_def("kernel", "image")
        assert exc_info.value.code == ErrorCode.TERM_MISMATCH

    def test_unknown_definition(self, nodes):
        nodes.request_definition("kernel", "1.2")

        with pytest.raises(DefinitionNotFoundError):
            nodes.resolve_pending_def("kernel", "kernel")

    def test_resolved_is_terminal(self, nodes):
        """解決済みの再解決・取り消しはエラー"""
        nodes.request_definition("kernel", "1.2")
        nodes.add_definition("kernel", "ker f")
        nodes.resolve_pending_def("kernel", "kernel")

        with pytest.raises(PendingDefNotPendingError):
            nodes.resolve_pending_def("kernel", "kernel")
        with pytest.raises(PendingDefNotPendingError):
            nodes.cancel_pending_def("kernel")


class TestCancelPendingDef:
    """取り消し（却下）"""

    def test_cancel(self, nodes):
        nodes.request_definition("kernel", "1.2")

        nodes.cancel_pending_def("kernel", reason="use 1.1 instead", actor="bob")

        pending = nodes.find_pending_def("kernel")
        assert pending.status == PendingDefStatus.CANCELLED
        assert pending.reason == "use 1.1 instead"

    def test_reject_is_cancel(self, nodes):
        nodes.request_definition("kernel", "1.2")

        nodes.reject_pending_def("kernel")

        assert nodes.find_pending_def("kernel").status == PendingDefStatus.CANCELLED

    def test_list_by_status(self, nodes):
        nodes.request_definition("kernel", "1.2")
        second = nodes.request_definition("order", "1.1")
        nodes.cancel_pending_def(second.entity_id)

        assert [p.term for p in nodes.list_pending_defs("pending")] == ["kernel"]
        assert [p.term for p in nodes.list_pending_defs(PendingDefStatus.CANCELLED)] == ["order"]
        assert len(nodes.list_pending_defs()) == 2


class TestBlockedNodes:
    """保留中の定義要求によるブロック"""

    def test_claim_blocked_until_resolved(self, nodes):
        """定義が解決されるまで要求元ノードはクレームできない"""
        # Arrange
        pending_id = nodes.request_definition("kernel", "1.2").entity_id

        # Act
        with pytest.raises(NodeBlockedError) as exc_info:
            nodes.claim_node("1.2", "bob")

        # Assert
        assert exc_info.value.code == ErrorCode.NODE_BLOCKED
        assert exc_info.value.pending_def_id == pending_id
        assert exc_info.value.current_state == "blocked"
        assert nodes.get_node("1.2").status == NodeStatus.UNCLAIMED

        nodes.add_definition("kernel", "the preimage of the identity")
        nodes.resolve_pending_def("kernel", "kernel")
        nodes.claim_node("1.2", "bob")
        assert nodes.get_node("1.2").owner == "bob"

    def test_accept_blocked_for_current_holder(self, nodes):
        """クレーム中に要求を出した保持者も、取消までは受理できない"""
        # Arrange
        nodes.claim_node("1.2", "bob")
        nodes.request_definition("kernel", "1.2", actor="bob")

        # Act & Assert
        with pytest.raises(NodeBlockedError):
            nodes.accept_node("1.2", "bob")
        assert nodes.get_node("1.2").status == NodeStatus.CLAIMED

        nodes.cancel_pending_def("kernel")
        nodes.accept_node("1.2", "bob")
        assert nodes.get_node("1.2").status == NodeStatus.ACCEPTED

    def test_other_nodes_are_not_blocked(self, nodes):
        nodes.request_definition("kernel", "1.2")

        nodes.claim_node("1.1", "alice")

        assert nodes.get_node("1.1").owner == "alice"

    def test_blocked_nodes_listing(self, nodes):
        """ブロック中のノードは一覧に現れ、クレーム可能な一覧からは外れる"""
        nodes.request_definition("kernel", "1.2")

        assert [str(n.id) for n in nodes.blocked_nodes()] == ["1.2"]
        assert "1.2" not in [str(n.id) for n in nodes.available_nodes()]
        assert nodes.status_summary()["blocked_nodes"] == 1

    def test_invalid_status_filter(self, nodes):
        with pytest.raises(InvalidInputError) as exc_info:
            nodes.list_pending_defs("forgotten")
        assert exc_info.value.code == ErrorCode.INVALID_STATUS
