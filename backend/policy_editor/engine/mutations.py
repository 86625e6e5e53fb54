"""Structural edits on an editable policy: cascading removal, unlinking, output creation."""
import copy
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from . import layout
from .catalog import TemplateCatalog, default_catalog
from .graph import FINISH, Edge, Node, Policy, Position, find_node

logger = logging.getLogger(__name__)


@dataclass
class RemoveNodesResult:
    updated_policy: Policy
    new_active_node: Node | None


def find_node_by_id(nodes: Iterable[Node], node_id: str | None) -> Node | None:
    return find_node(nodes, node_id)


def find_node_index_by_id(nodes: Sequence[Node], node_id: str | None) -> int:
    for index, node in enumerate(nodes):
        if node.id == node_id:
            return index
    return -1


def clear_edges(edges: Iterable[Edge], node_ids_to_remove: Iterable[str]) -> tuple[list[Edge], list[str]]:
    """Split edges into survivors and the sources of the edges being dropped."""
    removal = set(node_ids_to_remove)
    filtered: list[Edge] = []
    source_ids: list[str] = []
    for edge in edges:
        if edge.source in removal or edge.target in removal:
            source_ids.append(edge.source)
        else:
            filtered.append(edge)
    return filtered, source_ids


def group_output_nodes_by_parent(nodes: Iterable[Node], source_node_ids: Iterable[str]) -> dict[str, list[str]]:
    by_id = {n.id: n for n in nodes}
    grouped: dict[str, list[str]] = {}
    for node_id in source_node_ids:
        node = by_id.get(node_id)
        if node is None or not node.is_output or not node.parent_node:
            continue
        grouped.setdefault(node.parent_node, []).append(node_id)
    return grouped


def reset_disconnected_output_paths(
    nodes: Iterable[Node],
    node: Node,
    disconnected_output_ids: Iterable[str] | None,
    alive_ids: set[str] | None = None,
) -> None:
    """Point the node's disconnected outputs back at finish."""
    if disconnected_output_ids is None:
        return
    disconnected = set(disconnected_output_ids)
    by_id = {n.id: n for n in nodes}
    for output_id in node.data.output_ids:
        output = by_id.get(output_id)
        if output is None or output_id not in disconnected:
            continue
        if alive_ids is not None and output.data.connected_to in alive_ids:
            continue
        output.data.connected_to = FINISH


def _upstream_of(source: Node) -> tuple[str | None, str]:
    """(connected_from_node, connected_from_item) as seen from a downstream node."""
    if source.is_output:
        return source.parent_node, source.id
    return source.id, source.data.output_handle or source.id


def _repoint_upstream(nodes: Sequence[Node], node: Node, edges: Iterable[Edge]) -> None:
    incoming = next((e for e in edges if e.target == node.id), None)
    source = find_node(nodes, incoming.source) if incoming else None
    if source is None:
        node.data.connected_from_node = None
        node.data.connected_from_item = None
        return
    node.data.connected_from_node, node.data.connected_from_item = _upstream_of(source)


def _upstream_is_valid(nodes: Sequence[Node], node: Node, alive_ids: set[str]) -> bool:
    from_node = node.data.connected_from_node
    from_item = node.data.connected_from_item
    if from_node is not None and from_node not in alive_ids:
        return False
    if from_item is None or from_item in alive_ids:
        return True
    upstream = find_node(nodes, from_node)
    return upstream is not None and from_item == upstream.data.output_handle


def _repair_successor(node: Node, edges: Iterable[Edge], alive_ids: set[str]) -> None:
    target = node.data.connected_to
    if target in (None, FINISH) or target in alive_ids:
        return
    following = next((e.target for e in edges if e.source == node.id), None)
    node.data.connected_to = following or FINISH


def _relayout_children(nodes: Sequence[Node], node: Node, alive_ids: set[str]) -> None:
    outputs = [i for i in node.data.output_ids if i in alive_ids]
    rows = [i for i in node.data.sub_item_ids if i in alive_ids]
    if outputs == node.data.output_ids and rows == node.data.sub_item_ids:
        return
    node.data.output_ids = outputs
    node.data.sub_item_ids = rows
    for ids_ in (outputs, rows):
        for slot, child_id in enumerate(ids_):
            child = find_node(nodes, child_id)
            if child is not None:
                child.position = Position(child.position.x, layout.slot_y(slot))
    node.set_height(layout.container_height(len(outputs) + len(rows), is_group=node.is_group))


def _collect_removal_set(policy: Policy, node: Node) -> list[str]:
    removal: dict[str, None] = {node.id: None}
    parent = policy.get_node(node.parent_node)

    if node.head_of_group and parent is not None:
        removal[parent.id] = None
        removal.update(dict.fromkeys(parent.data.output_ids))
    else:
        for output_id in node.data.output_ids:
            removal[output_id] = None
            output = policy.get_node(output_id)
            if output is not None and output.is_group:
                removal.update(dict.fromkeys(output.data.output_ids))
        removal.update(dict.fromkeys(node.data.sub_item_ids))

    # owned children of anything removed go too, and so do groups that lost their head
    changed = True
    while changed:
        changed = False
        for candidate in policy.nodes:
            if candidate.id in removal:
                continue
            if candidate.parent_node in removal:
                removal[candidate.id] = None
                changed = True
            elif candidate.is_group and _group_lost_head(policy, candidate, removal):
                removal[candidate.id] = None
                removal.update(dict.fromkeys(candidate.data.output_ids))
                changed = True
    return list(removal)


def _group_lost_head(policy: Policy, group: Node, removal: dict[str, None]) -> bool:
    lost = [i for i in group.data.output_ids if i in removal]
    if not lost:
        return False
    remaining = [i for i in group.data.output_ids if i not in removal]
    if not remaining:
        return True
    return any(n is not None and n.head_of_group for n in (policy.get_node(i) for i in lost))


def _apply_removal(policy: Policy, removal_ids: list[str]) -> None:
    removal = set(removal_ids)
    edges, dropped_sources = clear_edges(policy.edges, removal)
    disconnected = group_output_nodes_by_parent(policy.nodes, dropped_sources)

    policy.nodes = [n for n in policy.nodes if n.id not in removal]
    alive_ids = policy.node_ids()
    policy.edges = [e for e in edges if e.source in alive_ids and e.target in alive_ids]

    for node in policy.nodes:
        reset_disconnected_output_paths(policy.nodes, node, disconnected.get(node.id), alive_ids)
        _repair_successor(node, policy.edges, alive_ids)
        if not _upstream_is_valid(policy.nodes, node, alive_ids):
            _repoint_upstream(policy.nodes, node, policy.edges)
        _relayout_children(policy.nodes, node, alive_ids)


def remove_nodes(
    policy: Policy,
    selected_nodes: Sequence[Node | str],
    on_system_node_blocked: Callable[[Node], None] | None = None,
) -> RemoveNodesResult:
    """Remove the selected nodes in order, repairing connectivity after each one.

    SYSTEM nodes are never removed; ``on_system_node_blocked`` is called for
    each one instead. ``new_active_node`` is the node the editor should focus
    afterwards: the parent of the last selected node, or the grandparent when
    that parent is a group shell.
    """
    working = copy.deepcopy(policy)
    snapshot = {n.id: n for n in policy.nodes}
    active_id: str | None = None

    for entry in selected_nodes:
        node_id = entry if isinstance(entry, str) else entry.id
        node = working.get_node(node_id) or snapshot.get(node_id)
        if node is None and isinstance(entry, Node):
            node = entry
        if node is None:
            active_id = None
            continue

        parent = working.get_node(node.parent_node) or snapshot.get(node.parent_node or "")
        if parent is not None and parent.is_group:
            active_id = parent.parent_node
        else:
            active_id = node.parent_node

        if node.is_system:
            logger.info("Refusing to remove SYSTEM node %s", node.id)
            if on_system_node_blocked is not None:
                on_system_node_blocked(node)
            continue

        removal = _collect_removal_set(working, node)
        _apply_removal(working, removal)
        logger.debug("Removed %d node(s) for selection %s", len(removal), node.id)

    return RemoveNodesResult(updated_policy=working, new_active_node=working.get_node(active_id))


def remove_edge_and_update_node(
    policy: Policy,
    edges: Sequence[Edge],
    edge: Edge,
) -> tuple[list[Edge], list[Node]]:
    filtered_edges = [copy.deepcopy(e) for e in edges if e.id != edge.id]
    nodes = copy.deepcopy(policy.nodes)
    source = find_node(nodes, edge.source)
    target = find_node(nodes, edge.target)
    if source is None or target is None:
        return filtered_edges, nodes

    if source.data.connected_to == target.id:
        following = next((e.target for e in filtered_edges if e.source == source.id), None)
        source.data.connected_to = following or FINISH

    if edge.source in (target.data.connected_from_item, target.data.connected_from_node):
        _repoint_upstream(nodes, target, filtered_edges)

    return filtered_edges, nodes


def update_parent_on_new_output_creation(nodes: Sequence[Node], new_outputs: Sequence[Node]) -> list[Node]:
    """Attach freshly created outputs to their parent and grow the parent to fit."""
    nodes = copy.deepcopy(list(nodes))
    if not new_outputs:
        return nodes
    parent = find_node(nodes, new_outputs[0].parent_node)
    if parent is None:
        return nodes

    new_outputs = copy.deepcopy(list(new_outputs))
    parent.data.output_ids.extend(o.id for o in new_outputs)
    parent.set_height(layout.container_height(len(parent.data.output_ids), is_group=parent.is_group))
    nodes.extend(new_outputs)
    return nodes


def find_relevant_parent_to_go_back(
    nodes: Sequence[Node],
    node: Node,
    catalog: TemplateCatalog | None = None,
) -> Node | None:
    catalog = catalog or default_catalog()
    parent = find_node(nodes, node.parent_node)

    if node.data.template_id == catalog.group_output_template:
        if parent is None or not parent.data.output_ids:
            return None
        return find_node(nodes, parent.data.output_ids[0])

    if parent is not None and parent.is_group:
        return find_node(nodes, parent.parent_node)
    return parent
