"""Graph invariants that must hold after any sequence of edits."""
import itertools

import pytest

from policy_editor.engine.graph import FINISH, NodeKind
from policy_editor.engine.importer import import_policy
from policy_editor.engine.mutations import remove_edge_and_update_node, remove_nodes
from policy_editor.engine.validator import validate_policy

REMOVABLE = ["inbound", "action", "connect", "finish-node", "say", "route", "call", "num-1"]


def assert_consistent(policy):
    ids = [n.id for n in policy.nodes]
    assert len(ids) == len(set(ids))
    alive = set(ids)

    for node in policy.nodes:
        assert node.data.connected_to in (None, FINISH) or node.data.connected_to in alive
        if node.connectable and node.kind in (NodeKind.DEFAULT, NodeKind.INPUT, NodeKind.OUTPUT):
            assert node.data.connected_to is not None
        assert node.parent_node is None or node.parent_node in alive
        for child_id in node.child_ids:
            assert child_id in alive
        if node.data.connected_from_node is not None:
            assert node.data.connected_from_node in alive

    pairs = [(e.source, e.target) for e in policy.edges]
    assert len(pairs) == len(set(pairs))
    for source, target in pairs:
        assert source in alive and target in alive

    for node in policy.nodes:
        if node.kind == NodeKind.INIT:
            continue
        parent = policy.get_node(node.parent_node)
        if parent is not None and not parent.is_group and node.id in parent.data.output_ids:
            slot = parent.data.output_ids.index(node.id)
            assert node.position.y == (slot + 1) * 33


class TestRemovalSequences:
    @pytest.mark.parametrize("first, second", list(itertools.permutations(REMOVABLE, 2)))
    def test_pairs_of_removals(self, legacy_policy, first, second):
        policy = import_policy(legacy_policy)
        policy = remove_nodes(policy, [first]).updated_policy
        assert_consistent(policy)
        policy = remove_nodes(policy, [second]).updated_policy
        assert_consistent(policy)
        assert validate_policy(policy) == []

    def test_batch_equals_sequence(self, legacy_policy):
        policy = import_policy(legacy_policy)
        batched = remove_nodes(policy, ["route", "inbound"]).updated_policy
        stepped = remove_nodes(remove_nodes(policy, ["route"]).updated_policy, ["inbound"]).updated_policy
        assert batched == stepped

    def test_remove_everything(self, legacy_policy):
        policy = import_policy(legacy_policy)
        top_level = [n.id for n in policy.nodes if n.parent_node is None and n.kind != NodeKind.INIT]
        result = remove_nodes(policy, top_level).updated_policy
        assert [n.kind for n in result.nodes] == [NodeKind.INIT]
        assert result.edges == []


class TestEdgeRemoval:
    @pytest.mark.parametrize("index", [0, 1, 2])
    def test_each_edge(self, legacy_policy, index):
        policy = import_policy(legacy_policy)
        edges, nodes = remove_edge_and_update_node(policy, policy.edges, policy.edges[index])
        policy.edges, policy.nodes = edges, nodes
        assert_consistent(policy)
        assert validate_policy(policy) == []
