"""Legacy policy import: flat index-based policy -> editable node/edge graph."""
import copy
import logging
from typing import Any, Mapping

from . import ids, layout
from .catalog import TemplateCatalog, default_catalog, merge_class_names
from .display import NodeDisplayResolver, decode_html_entities
from .graph import (
    FINISH,
    Edge,
    Node,
    NodeData,
    NodeKind,
    Policy,
    Position,
    make_init_node,
    make_output,
    make_sub_item,
)

logger = logging.getLogger(__name__)

# Legacy node keys consumed by the importer; anything else lands in NodeData.extra
_LEGACY_NODE_KEYS = {
    "id", "x", "y", "templateId", "templateClass", "title", "name", "description",
    "type", "className", "inputConnectorsAllowed", "outputConnectorsAllowed",
    "outputs", "subItems", "variables", "config", "input", "output",
    "connectedTo", "connectedFromNode", "connectedFromItem", "data", "parentId",
}
# Legacy policy keys mapped onto Policy attributes
_LEGACY_POLICY_KEYS = {
    "nodes", "connections", "edges", "id", "remoteId", "name", "description", "type",
    "source", "zoom", "grid", "navigator", "navigatorPositionIndex",
    "connectionType", "color", "translateX", "translateY", "finishId",
}


def is_system_policy_source(policy: Mapping[str, Any] | None) -> bool:
    return bool(policy) and policy.get("source") == "system"


def get_node_kind(raw: Mapping[str, Any], catalog: TemplateCatalog | None = None) -> NodeKind:
    """Classify a legacy node: template class, then template id, then connector capability."""
    catalog = catalog or default_catalog()
    template_class = raw.get("templateClass")
    if template_class:
        return catalog.kind_for_template_class(template_class)

    template_id = raw.get("templateId")
    if template_id is not None:
        kind = catalog.kind_for_template_id(template_id)
        if kind != NodeKind.DEFAULT:
            return kind

    can_output = bool(raw.get("outputConnectorsAllowed"))
    can_input = bool(raw.get("inputConnectorsAllowed"))
    if can_output and can_input:
        return NodeKind.DEFAULT
    if catalog.is_finish(template_id):
        return NodeKind.END
    if can_output:
        return NodeKind.INPUT
    return NodeKind.DEFAULT


def _has_internal_extension(raw: Mapping[str, Any]) -> bool:
    variables = raw.get("variables") or {}
    return bool(variables.get("internalExtension")) or raw.get("title") == "Event"


def _internal_extension_label(raw: Mapping[str, Any]) -> str:
    variables = raw.get("variables") or {}
    component = (raw.get("config") or {}).get("component") or {}
    value = variables.get("internalExtension")
    if value is None:
        value = component.get("label")
    return "" if value is None else str(value)


def _node_height(raw: Mapping[str, Any]) -> int:
    sub_items = raw.get("subItems") or []
    outputs = raw.get("outputs") or []
    if sub_items:
        return layout.calculate_height(min(layout.MAX_SUBITEMS, len(sub_items)))
    if outputs:
        return layout.calculate_height(len(outputs))
    if _has_internal_extension(raw):
        return layout.calculate_height(1)
    return layout.CONTAINER_BASE_HEIGHT


class LegacyPolicyImporter:
    """Builds a Policy from the flat legacy document."""

    def __init__(self, catalog: TemplateCatalog | None = None, display: NodeDisplayResolver | None = None):
        self.catalog = catalog or default_catalog()
        self.display = display or NodeDisplayResolver()

    def import_policy(self, legacy: Mapping[str, Any] | None, is_new: bool = False) -> Policy:
        if is_new or not legacy or legacy.get("nodes") is None:
            return Policy(nodes=[make_init_node()], navigator=True, navigator_position_index=5)

        top_level: list[Node] = []
        children: list[Node] = []
        output_ids: set[str] = set()
        finish_node_id = ""
        finish_input_id = ""

        for raw in legacy["nodes"]:
            if not isinstance(raw, Mapping) or not raw.get("id"):
                continue
            if self.catalog.is_finish(raw.get("templateId")):
                finish_node_id = raw["id"]
                finish_input_id = (raw.get("input") or {}).get("id") or ""

            node = self._transform_node(raw)
            outputs = self._build_outputs(raw, node)
            rows = self._build_sub_items(raw, node)
            node.data.output_ids = [o.id for o in outputs if o.parent_node == node.id]
            node.data.sub_item_ids = [r.id for r in rows]
            if not outputs and not rows and _has_internal_extension(raw):
                extension_row = self._build_extension_row(raw, node)
                node.data.sub_item_ids.append(extension_row.id)
                rows.append(extension_row)

            output_ids.update(o.id for o in outputs if not o.is_group)
            top_level.append(node)
            children.extend(rows)
            children.extend(outputs)

        all_nodes = _dedupe([make_init_node(), *top_level, *children])
        by_id = {n.id: n for n in all_nodes}
        connections = [c for c in legacy.get("connections") or [] if isinstance(c, Mapping)]
        edges = self._build_edges(connections, by_id, output_ids, finish_node_id, finish_input_id)
        self._repair_back_references(connections, by_id, output_ids)

        policy = Policy(
            nodes=all_nodes,
            edges=edges,
            finish_id=legacy.get("finishId"),
            id=legacy.get("id"),
            remote_id=legacy.get("remoteId"),
            name=legacy.get("name") or "",
            description=legacy.get("description"),
            policy_type=_policy_type(legacy.get("type")),
            source=legacy.get("source"),
            zoom=legacy.get("zoom"),
            grid=legacy.get("grid"),
            navigator=True if legacy.get("navigator") is None else legacy["navigator"],
            navigator_position_index=(
                5 if legacy.get("navigatorPositionIndex") is None else legacy["navigatorPositionIndex"]
            ),
            connection_type=legacy.get("connectionType"),
            color=legacy.get("color"),
            translate_x=legacy.get("translateX"),
            translate_y=legacy.get("translateY"),
            extra={k: copy.deepcopy(v) for k, v in legacy.items() if k not in _LEGACY_POLICY_KEYS},
        )
        logger.debug(
            "Imported policy %r: %d nodes, %d edges (%d connections)",
            policy.name, len(policy.nodes), len(policy.edges), len(connections),
        )
        return policy

    # -- nodes ---------------------------------------------------------------

    def _transform_node(self, raw: Mapping[str, Any]) -> Node:
        kind = get_node_kind(raw, self.catalog)
        title_key = raw.get("title") or raw.get("name")
        legacy_data = raw.get("data") or {}
        display_view = {
            "title": title_key,
            "name": raw.get("name"),
            "data": {
                "title": legacy_data.get("title") or legacy_data.get("name"),
                "name": legacy_data.get("name"),
            },
        }
        label = self.display.title(display_view)
        description = self.display.description({"title": title_key, "data": {"description": raw.get("description")}})

        data = NodeData(
            label=label,
            title=raw.get("title"),
            name=decode_html_entities(raw["name"]) if raw.get("name") else raw.get("name"),
            description=description,
            template_id=raw.get("templateId"),
            template_class=raw.get("templateClass"),
            type=raw.get("type") if raw.get("type") == "SYSTEM" else legacy_data.get("type"),
            sub_items=[copy.deepcopy(dict(s)) for s in raw.get("subItems") or [] if isinstance(s, Mapping)],
            variables=copy.deepcopy(raw.get("variables")),
            config=copy.deepcopy(raw.get("config")),
            connected_to=raw.get("connectedTo") or (None if kind == NodeKind.END else FINISH),
            connected_from_node=raw.get("connectedFromNode"),
            connected_from_item=raw.get("connectedFromItem"),
            output_handle=(raw.get("output") or {}).get("id"),
            input_handle=(raw.get("input") or {}).get("id"),
            extra={
                **{k: copy.deepcopy(v) for k, v in raw.items() if k not in _LEGACY_NODE_KEYS},
                **{k: copy.deepcopy(v) for k, v in legacy_data.items() if k not in ("title", "name", "type")},
            },
        )
        if raw.get("inputConnectorsAllowed") is not None:
            data.extra["inputConnectorsAllowed"] = raw["inputConnectorsAllowed"]
        if raw.get("outputConnectorsAllowed") is not None:
            data.extra["outputConnectorsAllowed"] = raw["outputConnectorsAllowed"]

        node = Node(
            id=raw["id"],
            kind=kind,
            position=Position(layout.clamp_to_canvas(raw.get("x")), layout.clamp_to_canvas(raw.get("y"))),
            data=data,
            parent_id=raw.get("parentId"),
            width=150,
            class_name=merge_class_names(
                raw.get("className"),
                self.catalog.node_class_name(raw.get("templateId"), kind),
            ),
        )
        node.set_height(_node_height(raw))
        return node

    def _build_outputs(self, raw: Mapping[str, Any], owner: Node) -> list[Node]:
        """Owned outputs, plus the nested outputs of any group shell among them."""
        result: list[Node] = []
        slot = 0
        for raw_output in raw.get("outputs") or []:
            if not isinstance(raw_output, Mapping):
                continue
            if raw_output.get("type") == NodeKind.GROUP.value:
                result.extend(self._carry_group(raw_output, owner, slot))
            else:
                result.append(self._synthesize_output(raw_output, owner, slot))
            slot += 1
        return result

    def _synthesize_output(self, raw_output: Mapping[str, Any], owner: Node, slot: int) -> Node:
        nested = raw_output.get("data") or {}
        data = NodeData.from_dict({**raw_output, **nested})
        data.label = raw_output.get("title") or raw_output.get("name") or "Output"
        data.description = raw_output.get("description")
        data.connected_to = raw_output.get("connectedTo") or nested.get("connectedTo") or FINISH
        for key in ("id", "data", "parentId", "parentNode", "headOfGroup", "position", "extent", "className", "style"):
            data.extra.pop(key, None)
        output = make_output(
            owner.id,
            slot,
            data=data,
            output_id=raw_output.get("id") or ids.generate_id(),
            parent_id=raw_output.get("parentId"),
        )
        output.head_of_group = bool(raw_output.get("headOfGroup"))
        return output

    def _carry_group(self, raw_group: Mapping[str, Any], owner: Node, slot: int) -> list[Node]:
        """A group output already is a sub-graph: keep its ids, positions and flags."""
        shell = Node.from_dict(raw_group, default_kind=NodeKind.GROUP)
        shell.kind = NodeKind.GROUP
        shell.parent_node = owner.id
        if raw_group.get("position") is None:
            shell.position = Position(0, layout.slot_y(slot))
        nested_raw = [o for o in (raw_group.get("data") or {}).get("outputs") or [] if isinstance(o, Mapping)]
        nested = []
        for raw_child in nested_raw:
            child = Node.from_dict(raw_child, default_kind=NodeKind.OUTPUT)
            child.parent_node = shell.id
            if child.data.connected_to is None:
                child.data.connected_to = raw_child.get("connectedTo") or FINISH
            nested.append(child)
        shell.data.output_ids = [c.id for c in nested]
        return [shell, *nested]

    def _build_sub_items(self, raw: Mapping[str, Any], owner: Node) -> list[Node]:
        records = [s for s in raw.get("subItems") or [] if isinstance(s, Mapping)]
        total = len(records)
        rows = []
        for index, record in enumerate(records[:layout.MAX_SUBITEMS]):
            name = decode_html_entities(record.get("name"))
            if total > layout.MAX_SUBITEMS and index == layout.MAX_SUBITEMS - 1:
                name = f"...{total - layout.MAX_SUBITEMS + 1} more"
            data = NodeData(
                label=name,
                name=name,
                template_id=record.get("templateId"),
                variables=copy.deepcopy(record.get("variables")),
            )
            rows.append(make_sub_item(owner.id, index, data, item_id=record.get("id")))
        return rows

    def _build_extension_row(self, raw: Mapping[str, Any], owner: Node) -> Node:
        label = _internal_extension_label(raw)
        data = NodeData(label=label, name=label, variables=copy.deepcopy(raw.get("variables")))
        return make_sub_item(owner.id, 0, data)

    # -- connections ---------------------------------------------------------

    def _build_edges(
        self,
        connections: list[Mapping[str, Any]],
        by_id: dict[str, Node],
        output_ids: set[str],
        finish_node_id: str,
        finish_input_id: str,
    ) -> list[Edge]:
        edges: list[Edge] = []
        seen: set[tuple[str, str]] = set()
        for conn in connections:
            source = conn.get("source") or {}
            dest = conn.get("dest") or {}
            source_handle = source.get("id")
            dest_handle = dest.get("id")

            if finish_input_id and dest_handle == finish_input_id:
                target_id = finish_node_id
            else:
                target_id = dest.get("nodeID")
            source_id = source_handle if source_handle in output_ids else source.get("nodeID")

            if not source_id or not target_id:
                continue
            if source_id not in by_id or target_id not in by_id:
                logger.debug("Dropping connection %s -> %s: endpoint missing", source_id, target_id)
                continue
            if (source_id, target_id) in seen:
                continue
            seen.add((source_id, target_id))
            edges.append(Edge(
                id=f"edge-{source_id}-{target_id}",
                source=source_id,
                target=target_id,
                source_handle=source_handle,
                target_handle=dest_handle,
            ))
        return edges

    def _repair_back_references(
        self,
        connections: list[Mapping[str, Any]],
        by_id: dict[str, Node],
        output_ids: set[str],
    ) -> None:
        for conn in connections:
            source = conn.get("source") or {}
            dest = conn.get("dest") or {}
            source_handle = source.get("id")
            source_entity = by_id.get(source_handle) if source_handle in output_ids else by_id.get(source.get("nodeID"))
            dest_node = by_id.get(dest.get("nodeID"))
            if source_entity is None or dest_node is None:
                continue

            if source_entity.data.connected_to in (None, "", FINISH):
                source_entity.data.connected_to = dest_node.id

            if source_entity.is_output:
                dest_node.data.connected_from_node = source_entity.parent_node
                dest_node.data.connected_from_item = source_entity.id
            else:
                dest_node.data.connected_from_node = source_entity.id
                dest_node.data.connected_from_item = source_entity.data.output_handle or source_entity.id


def _policy_type(raw: Any) -> str | None:
    if isinstance(raw, Mapping):
        return raw.get("advanced")
    return raw


def _dedupe(nodes: list[Node]) -> list[Node]:
    seen: set[str] = set()
    result = []
    for node in nodes:
        if node.id in seen:
            continue
        seen.add(node.id)
        result.append(node)
    return result


def import_policy(
    legacy: Mapping[str, Any] | None,
    is_new: bool = False,
    catalog: TemplateCatalog | None = None,
    display: NodeDisplayResolver | None = None,
) -> Policy:
    return LegacyPolicyImporter(catalog, display).import_policy(legacy, is_new)
