"""Serialize an edited policy back into the legacy save documents."""
import copy
import json
import logging
import time
from typing import Any, Iterable, Mapping, Sequence

from ..models.schemas import ConnectorConfig, SavePayload
from . import ids
from .catalog import PolicyType, TemplateCatalog, basic_policy_type, default_catalog
from .graph import Edge, Node, NodeKind, Policy, find_node

logger = logging.getLogger(__name__)

CONNECT_AND_SCREEN_IDS = ("screenId", "connectId", "screenParentId", "connectParentId")
# Editor-only keys that never reach the saved documents
EDITOR_KEYS = ("label", "outputIds", "subItemIds")


def get_policy_type(policy: Policy) -> str:
    return policy.policy_type or PolicyType.CALL.value


def _is_init(node: Node) -> bool:
    return node.kind == NodeKind.INIT


def filter_payload_nodes(policy: Policy, catalog: TemplateCatalog | None = None) -> list[Node]:
    """Top-level nodes the graph document carries: accepted templates and SYSTEM nodes."""
    catalog = catalog or default_catalog()
    nodes = policy.nodes[1:] if policy.nodes and _is_init(policy.nodes[0]) else policy.nodes
    return [
        n for n in nodes
        if n.parent_node is None
        and (n.is_system or catalog.is_accepted_in_payload(n.data.template_id))
    ]


def omit_connect_and_screen_ids(record: dict[str, Any], catalog: TemplateCatalog | None = None) -> dict[str, Any]:
    catalog = catalog or default_catalog()
    record = {k: v for k, v in record.items() if k not in EDITOR_KEYS}
    if record.get("title") in catalog.connect_id_titles:
        return record
    return {k: v for k, v in record.items() if k not in CONNECT_AND_SCREEN_IDS}


def update_output_config_if_exists(output_config: dict[str, Any] | None, config: ConnectorConfig) -> None:
    """Fill an explicitly null devOrgId/connectorId from the connector settings."""
    if not output_config:
        return
    null_org = "devOrgId" in output_config and output_config["devOrgId"] is None
    null_connector = "connectorId" in output_config and output_config["connectorId"] is None
    if null_org or null_connector:
        output_config["devOrgId"] = config.dev_org_id
        output_config["connectorId"] = config.connector_id


def ensure_inbound_number_items_template_id(items: Iterable[Mapping[str, Any]], catalog: TemplateCatalog | None = None) -> list[dict[str, Any]]:
    catalog = catalog or default_catalog()
    return [
        {**{k: v for k, v in item.items() if k != "parentNode"}, "templateId": catalog.inbound_number_template}
        for item in items
    ]


def _output_record(output: Node, policy_type: str, config: ConnectorConfig, catalog: TemplateCatalog) -> dict[str, Any]:
    record = output.data.to_dict()
    record["id"] = output.id
    if output.parent_id is not None:
        record["parentId"] = output.parent_id
    if output.head_of_group:
        record["headOfGroup"] = True
    record["type"] = policy_type
    record = omit_connect_and_screen_ids(record, catalog)
    if output.data.name:
        record["name"] = output.data.name
    if output.data.connected_to:
        record["connectedTo"] = output.data.connected_to
    update_output_config_if_exists(record.get("config"), config)
    return record


def _group_record(group: Node, nodes: Sequence[Node]) -> dict[str, Any]:
    record = group.to_dict()
    record["data"].pop("outputIds", None)
    record["data"]["outputs"] = [
        child.to_dict()
        for child in (find_node(nodes, i) for i in group.data.output_ids)
        if child is not None
    ]
    return record


def map_node_to_payload_format(
    node: Node,
    nodes: Sequence[Node],
    policy_type: str,
    config: ConnectorConfig,
    catalog: TemplateCatalog | None = None,
) -> dict[str, Any] | None:
    """Legacy nested record for one top-level node, or None when it is not saved."""
    catalog = catalog or default_catalog()
    template_id = node.data.template_id
    if catalog.is_inbound_number(template_id) and not node.data.template_class:
        return None

    record = node.data.to_dict()
    record.update({
        "templateId": template_id,
        "id": node.id or None,
        "parentId": node.parent_id or ids.generate_id(),
        "x": node.position.x,
        "y": node.position.y,
    })
    record = omit_connect_and_screen_ids(record, catalog)

    outputs = []
    for output_id in node.data.output_ids:
        output = find_node(nodes, output_id)
        if output is None:
            continue
        if output.is_group:
            outputs.append(_group_record(output, nodes))
        else:
            outputs.append(_output_record(output, policy_type, config, catalog))
    if outputs:
        record["outputs"] = outputs

    if catalog.is_inbound_number(template_id) and record.get("subItems"):
        record["subItems"] = ensure_inbound_number_items_template_id(record["subItems"], catalog)
    return record


def map_nodes_to_payload_format(
    nodes: Iterable[Node],
    all_nodes: Sequence[Node],
    policy_type: str,
    config: ConnectorConfig,
    catalog: TemplateCatalog | None = None,
) -> list[dict[str, Any]]:
    records = (map_node_to_payload_format(n, all_nodes, policy_type, config, catalog) for n in nodes)
    return [r for r in records if r is not None]


def map_edges_to_connections(edges: Iterable[Edge], nodes: Sequence[Node]) -> list[dict[str, Any]]:
    """Editor edges -> legacy connections.

    An output source is reported under its container (through a group shell
    when the output lives in one) with the output id as the handle; a plain
    node source uses its own output handle.
    """
    connections = []
    for edge in edges:
        source = find_node(nodes, edge.source)
        dest = find_node(nodes, edge.target)
        if source is None or dest is None:
            continue

        resolved_source = source.parent_node
        parent = find_node(nodes, source.parent_node)
        if parent is not None and parent.is_group:
            resolved_source = parent.parent_node

        connections.append({
            "source": {
                "nodeID": resolved_source or edge.source,
                "id": edge.source if source.parent_node else (source.data.output_handle or edge.source),
            },
            "dest": {
                "nodeID": edge.target,
                "id": dest.data.input_handle or edge.target,
            },
        })
    return connections


def build_body(policy: Policy, config: ConnectorConfig, catalog: TemplateCatalog | None = None) -> dict[str, Any]:
    """The graph document (Body__c)."""
    catalog = catalog or default_catalog()
    policy_type = get_policy_type(policy)
    basic = basic_policy_type(policy_type)

    body = copy.deepcopy(policy.extra)
    body.update({
        "id": policy.id or None,
        "remoteId": policy.remote_id or None,
        "name": policy.name,
        "description": policy.description or None,
        "type": {"advanced": policy_type, "basic": basic},
        "zoom": policy.zoom or 1,
        "grid": False if policy.grid is None else policy.grid,
        "source": policy.source or "USER",
        "navigator": True if policy.navigator is None else policy.navigator,
        "navigatorPositionIndex": 5 if policy.navigator_position_index is None else policy.navigator_position_index,
        "connectionType": policy.connection_type or "smooth",
        "color": True if policy.color is None else policy.color,
        "translateX": policy.translate_x or 0,
        "translateY": policy.translate_y or 0,
        "finishId": policy.finish_id or "",
        "lastModifiedDate": int(time.time() * 1000),
        "connections": map_edges_to_connections(policy.edges, policy.nodes),
        "nodes": map_nodes_to_payload_format(
            filter_payload_nodes(policy, catalog), policy.nodes, basic, config, catalog,
        ),
    })
    return body


def process_payload_items(items: Sequence[dict[str, Any]], catalog: TemplateCatalog | None = None) -> list[dict[str, Any]]:
    """Adjust each item against its successor in the flattened list."""
    catalog = catalog or default_catalog()
    result = []
    for index, item in enumerate(items):
        item = copy.deepcopy(item)
        next_id = items[index + 1].get("id") if index + 1 < len(items) else None
        if not next_id or catalog.is_pass_through(item.get("templateId")):
            if isinstance(item.get("subItems"), list):
                item["subItems"] = [
                    {k: v for k, v in sub.items() if k != "parentNode"} for sub in item["subItems"]
                ]
        elif item.get("templateId") in catalog.next_id_templates and isinstance(item.get("variables"), dict):
            item["variables"].pop("nextId", None)
        result.append(item)
    return result


def _item_outputs(node: Node, nodes: Sequence[Node]) -> list[dict[str, Any]]:
    """Outputs for the flattened item, group shells expanded in place.

    Only the first output whose parentId equals the container id keeps it;
    later siblings get a fresh parentId. The runtime consuming this document
    relies on that.
    """
    flat: list[Node] = []
    for output_id in node.data.output_ids:
        output = find_node(nodes, output_id)
        if output is None:
            continue
        if output.is_group:
            flat.extend(c for c in (find_node(nodes, i) for i in output.data.output_ids) if c is not None)
        else:
            flat.append(output)

    records = []
    for index, output in enumerate(flat):
        parent_id = output.parent_id
        if index > 0 and parent_id == node.id:
            parent_id = ids.generate_id()
        records.append({
            "id": output.id,
            "name": output.data.name or output.data.label,
            "templateId": output.data.template_id,
            "parentId": parent_id,
            "variables": copy.deepcopy(output.data.variables),
            "config": copy.deepcopy(output.data.config),
            "connectedTo": output.data.connected_to,
        })
    return records


def build_policy_document(policy: Policy, catalog: TemplateCatalog | None = None) -> dict[str, Any]:
    """The flattened-item document (Policy__c)."""
    catalog = catalog or default_catalog()
    policy_type = get_policy_type(policy)
    finish_item = {
        "id": policy.finish_id or ids.generate_id(),
        "name": "Finish",
        "templateId": catalog.finish_template_for(policy_type),
        "variables": None,
        "subItems": [],
    }

    items = []
    for node in policy.nodes:
        if _is_init(node) or node.parent_node is not None or not node.data.name:
            continue
        items.append({
            "id": node.id,
            "name": node.data.name,
            "templateId": node.data.template_id if node.data.template_id is not None else 0,
            "variables": copy.deepcopy(node.data.variables),
            "subItems": copy.deepcopy(node.data.sub_items),
            "outputs": _item_outputs(node, policy.nodes),
            "connectedTo": node.data.connected_to,
            "finishId": finish_item["id"],
        })

    items = process_payload_items(items, catalog)
    items.append(finish_item)
    return {
        "name": policy.name,
        "enabled": True,
        "type": basic_policy_type(policy_type),
        "items": items,
    }


def build_phone_numbers(nodes: Iterable[Node | Mapping[str, Any]], catalog: TemplateCatalog | None = None) -> str:
    """Comma-joined public numbers of every inbound-number node's list items."""
    catalog = catalog or default_catalog()
    numbers = []
    for node in nodes:
        if isinstance(node, Node):
            template_id = node.data.template_id
            sub_items = node.data.sub_items
        else:
            data = node.get("data") or {}
            template_id = node.get("templateId", data.get("templateId"))
            sub_items = node.get("subItems") or data.get("subItems") or []
        if not catalog.is_inbound_number(template_id):
            continue
        for sub_item in sub_items:
            number = (sub_item.get("variables") or {}).get("publicNumber")
            if number:
                numbers.append(str(number))
    return ",".join(numbers)


def build_payload(
    policy: Policy,
    config: ConnectorConfig | None = None,
    sounds: list[dict[str, Any]] | None = None,
    license_data: dict[str, Any] | None = None,
    catalog: TemplateCatalog | None = None,
) -> SavePayload:
    """Build the record the policy store persists.

    A missing ``finish_id`` is generated and written back onto ``policy`` so
    repeated saves reuse it. ``sounds`` and ``license_data`` are accepted for
    callers that carry them but do not change either document.
    """
    catalog = catalog or default_catalog()
    config = config or ConnectorConfig()
    if not policy.finish_id:
        policy.finish_id = ids.generate_id()

    working = copy.deepcopy(policy)
    body = build_body(working, config, catalog)
    document = build_policy_document(working, catalog)
    logger.debug(
        "Built payload for %r: %d graph nodes, %d items (%d sounds, license keys %s)",
        working.name, len(body["nodes"]), len(document["items"]),
        len(sounds or []), sorted((license_data or {}).keys()),
    )
    return SavePayload(
        body=json.dumps(body),
        description=working.description or "",
        id=working.id or None,
        remote_id=working.remote_id or None,
        name=working.name,
        policy=json.dumps(document),
        type=get_policy_type(working),
        phone_numbers=build_phone_numbers(working.nodes, catalog),
    )
