"""Graph data structures for the policy editor: nodes, owned children, edges, policy."""
import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

from . import ids, layout

FINISH = "finish"
INIT_NODE_ID = "init_node"
SYSTEM_NODE_TYPE = "SYSTEM"

OUTPUT_CLASS_NAME = "container__subItem-event-output custom-node"
SUB_ITEM_CLASS_NAME = "custom-node container__subItem"


class NodeKind(str, Enum):
    INIT = "init"
    DEFAULT = "default"
    INPUT = "input"
    OUTPUT = "output"
    GROUP = "group"
    END = "end"

    @classmethod
    def parse(cls, value: Any, default: "NodeKind | None" = None) -> "NodeKind":
        try:
            return cls(value)
        except ValueError:
            return default or cls.DEFAULT


@dataclass
class Position:
    x: float = 0
    y: float = 0

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> "Position":
        raw = raw or {}
        return cls(x=raw.get("x") or 0, y=raw.get("y") or 0)


# camelCase key -> NodeData attribute, for the scalar fields
_DATA_FIELDS = {
    "label": "label",
    "title": "title",
    "name": "name",
    "description": "description",
    "templateId": "template_id",
    "templateClass": "template_class",
    "type": "type",
    "variables": "variables",
    "config": "config",
    "connectedTo": "connected_to",
    "connectedFromNode": "connected_from_node",
    "connectedFromItem": "connected_from_item",
}
_DATA_STRUCTURAL_KEYS = {"outputIds", "outputs", "subItemIds", "subItems", "output", "input"}


@dataclass
class NodeData:
    label: str = ""
    title: str | None = None
    name: str | None = None
    description: str | None = None
    template_id: int | str | None = None
    template_class: str | None = None
    type: str | None = None  # node-level marker, e.g. SYSTEM
    output_ids: list[str] = field(default_factory=list)
    sub_item_ids: list[str] = field(default_factory=list)
    sub_items: list[dict[str, Any]] = field(default_factory=list)  # full legacy records
    variables: dict[str, Any] | None = None
    config: dict[str, Any] | None = None
    connected_to: str | None = None
    connected_from_node: str | None = None
    connected_from_item: str | None = None
    output_handle: str | None = None
    input_handle: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = copy.deepcopy(self.extra)
        for key, attr in _DATA_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                out[key] = copy.deepcopy(value)
        if self.output_ids:
            out["outputIds"] = list(self.output_ids)
        if self.sub_item_ids:
            out["subItemIds"] = list(self.sub_item_ids)
        if self.sub_items:
            out["subItems"] = copy.deepcopy(self.sub_items)
        if self.output_handle:
            out["output"] = {"id": self.output_handle}
        if self.input_handle:
            out["input"] = {"id": self.input_handle}
        return out

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> "NodeData":
        raw = raw or {}
        data = cls(**{
            attr: copy.deepcopy(raw[key])
            for key, attr in _DATA_FIELDS.items()
            if raw.get(key) is not None
        })
        data.output_ids = _child_ids(raw.get("outputIds", raw.get("outputs")))
        data.sub_item_ids = list(raw.get("subItemIds") or [])
        data.sub_items = [dict(item) for item in raw.get("subItems") or [] if isinstance(item, Mapping)]
        data.output_handle = _handle_id(raw.get("output"))
        data.input_handle = _handle_id(raw.get("input"))
        data.extra = {
            key: copy.deepcopy(value)
            for key, value in raw.items()
            if key not in _DATA_FIELDS and key not in _DATA_STRUCTURAL_KEYS
        }
        return data


@dataclass
class Node:
    id: str
    kind: NodeKind = NodeKind.DEFAULT
    position: Position = field(default_factory=Position)
    data: NodeData = field(default_factory=NodeData)
    parent_node: str | None = None  # ownership: the container this child belongs to
    parent_id: str | None = None  # runtime parent id carried into the saved documents
    head_of_group: bool = False
    height: float | None = None
    width: float | None = None
    style: dict[str, Any] = field(default_factory=dict)
    draggable: bool = True
    selectable: bool = True
    connectable: bool = True
    class_name: str = ""

    @property
    def is_output(self) -> bool:
        return self.kind == NodeKind.OUTPUT

    @property
    def is_group(self) -> bool:
        return self.kind == NodeKind.GROUP

    @property
    def is_system(self) -> bool:
        return self.data.type == SYSTEM_NODE_TYPE

    @property
    def child_ids(self) -> list[str]:
        return [*self.data.output_ids, *self.data.sub_item_ids]

    def set_height(self, height: float) -> None:
        self.height = height
        self.style["height"] = height

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "type": self.kind.value,
            "position": self.position.to_dict(),
            "data": self.data.to_dict(),
            "draggable": self.draggable,
            "selectable": self.selectable,
            "connectable": self.connectable,
        }
        if self.parent_node is not None:
            out["parentNode"] = self.parent_node
            out["extent"] = "parent"
        if self.parent_id is not None:
            out["parentId"] = self.parent_id
        if self.head_of_group:
            out["headOfGroup"] = True
        if self.height is not None:
            out["height"] = self.height
        if self.width is not None:
            out["width"] = self.width
        if self.style:
            out["style"] = dict(self.style)
        if self.class_name:
            out["className"] = self.class_name
        return out

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], default_kind: NodeKind = NodeKind.DEFAULT) -> "Node":
        return cls(
            id=raw.get("id") or ids.generate_id(),
            kind=NodeKind.parse(raw.get("type"), default_kind),
            position=Position.from_dict(raw.get("position")),
            data=NodeData.from_dict(raw.get("data")),
            parent_node=raw.get("parentNode"),
            parent_id=raw.get("parentId"),
            head_of_group=bool(raw.get("headOfGroup")),
            height=raw.get("height"),
            width=raw.get("width"),
            style=dict(raw.get("style") or {}),
            draggable=raw.get("draggable", True),
            selectable=raw.get("selectable", True),
            connectable=raw.get("connectable", True),
            class_name=raw.get("className") or "",
        )


@dataclass
class Edge:
    id: str
    source: str
    target: str
    source_handle: str | None = None
    target_handle: str | None = None
    type: str = "default"
    marker_end: str | None = "arrowclosed"

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "type": self.type,
        }
        if self.source_handle is not None:
            out["sourceHandle"] = self.source_handle
        if self.target_handle is not None:
            out["targetHandle"] = self.target_handle
        if self.marker_end:
            out["markerEnd"] = {"type": self.marker_end}
        return out

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Edge":
        marker = raw.get("markerEnd")
        return cls(
            id=raw.get("id") or f"edge-{raw['source']}-{raw['target']}",
            source=raw["source"],
            target=raw["target"],
            source_handle=raw.get("sourceHandle"),
            target_handle=raw.get("targetHandle"),
            type=raw.get("type") or "default",
            marker_end=marker.get("type") if isinstance(marker, Mapping) else marker,
        )


# camelCase key -> Policy attribute, for the scalar fields
_POLICY_FIELDS = {
    "finishId": "finish_id",
    "id": "id",
    "remoteId": "remote_id",
    "name": "name",
    "description": "description",
    "policyType": "policy_type",
    "source": "source",
    "zoom": "zoom",
    "grid": "grid",
    "navigator": "navigator",
    "navigatorPositionIndex": "navigator_position_index",
    "connectionType": "connection_type",
    "color": "color",
    "translateX": "translate_x",
    "translateY": "translate_y",
}


@dataclass
class Policy:
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    finish_id: str | None = None
    id: str | None = None
    remote_id: str | None = None
    name: str = ""
    description: str | None = None
    policy_type: str | None = None
    source: str | None = None
    zoom: float | None = None
    grid: bool | None = None
    navigator: bool = True
    navigator_position_index: int = 5
    connection_type: str | None = None
    color: bool | None = None
    translate_x: float | None = None
    translate_y: float | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def get_node(self, node_id: str | None) -> Node | None:
        return find_node(self.nodes, node_id)

    def node_ids(self) -> set[str]:
        return {n.id for n in self.nodes}

    def get_incoming_edges(self, node_id: str) -> list[Edge]:
        return [e for e in self.edges if e.target == node_id]

    def get_outgoing_edges(self, node_id: str) -> list[Edge]:
        return [e for e in self.edges if e.source == node_id]

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = copy.deepcopy(self.extra)
        for key, attr in _POLICY_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                out[key] = value
        out["nodes"] = [n.to_dict() for n in self.nodes]
        out["edges"] = [e.to_dict() for e in self.edges]
        return out

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Policy":
        policy = cls(
            nodes=[Node.from_dict(n) for n in raw.get("nodes") or []],
            edges=[Edge.from_dict(e) for e in raw.get("edges") or []],
            extra={
                k: copy.deepcopy(v)
                for k, v in raw.items()
                if k not in _POLICY_FIELDS and k not in ("nodes", "edges")
            },
        )
        for key, attr in _POLICY_FIELDS.items():
            if raw.get(key) is not None:
                setattr(policy, attr, raw[key])
        return policy


def find_node(nodes: Iterable[Node], node_id: str | None) -> Node | None:
    if not node_id:
        return None
    return next((n for n in nodes if n.id == node_id), None)


def _child_ids(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    result = []
    for item in raw:
        if isinstance(item, str):
            result.append(item)
        elif isinstance(item, Mapping) and item.get("id"):
            result.append(item["id"])
    return result


def _handle_id(raw: Any) -> str | None:
    if isinstance(raw, Mapping):
        return raw.get("id")
    return None


# ---------------------------------------------------------------------------
# Variant constructors
# ---------------------------------------------------------------------------

def make_init_node() -> Node:
    """The canvas seed node; never draggable or selectable."""
    return Node(
        id=INIT_NODE_ID,
        kind=NodeKind.INIT,
        position=Position(layout.MIN_CANVAS_MARGIN, layout.MIN_CANVAS_MARGIN),
        data=NodeData(
            label="Click here to START",
            name="Click here to START",
            description="init node",
        ),
        draggable=False,
        selectable=False,
    )


def make_output(
    parent_node: str,
    slot: int,
    data: NodeData | None = None,
    output_id: str | None = None,
    parent_id: str | None = None,
    draggable: bool = True,
) -> Node:
    data = data or NodeData(label="Output")
    if data.connected_to is None:
        data.connected_to = FINISH
    return Node(
        id=output_id or ids.generate_id(),
        kind=NodeKind.OUTPUT,
        position=Position(0, layout.slot_y(slot)),
        data=data,
        parent_node=parent_node,
        parent_id=parent_id,
        draggable=draggable,
        selectable=False,
        class_name=OUTPUT_CLASS_NAME,
    )


def make_sub_item(parent_node: str, slot: int, data: NodeData, item_id: str | None = None) -> Node:
    """A read-only list row: not selectable, draggable or connectable."""
    return Node(
        id=item_id or ids.generate_id(),
        kind=NodeKind.OUTPUT,
        position=Position(0, layout.slot_y(slot)),
        data=data,
        parent_node=parent_node,
        draggable=False,
        selectable=False,
        connectable=False,
        class_name=SUB_ITEM_CLASS_NAME,
    )


def make_group(parent_node: str, slot: int, group_id: str | None = None, data: NodeData | None = None) -> Node:
    return Node(
        id=group_id or ids.generate_id(),
        kind=NodeKind.GROUP,
        position=Position(0, layout.slot_y(slot)),
        data=data or NodeData(),
        parent_node=parent_node,
        selectable=False,
    )
