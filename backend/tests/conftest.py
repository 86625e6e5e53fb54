"""Shared test fixtures for policy editor backend tests."""
import itertools
import sys
from pathlib import Path

import pytest

# Ensure policy_editor package is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from policy_editor.engine import ids
from policy_editor.engine.graph import Edge, Node, NodeData, NodeKind, Policy, Position


@pytest.fixture
def fixed_ids(monkeypatch):
    """Deterministic ids ("id-1", "id-2", ...). Returns a callable that restarts the sequence."""
    state = {"counter": itertools.count(1)}

    def fake_generate_id():
        return f"id-{next(state['counter'])}"

    def fake_generate_hex_id():
        return f"{next(state['counter']):032x}"

    monkeypatch.setattr(ids, "generate_id", fake_generate_id)
    monkeypatch.setattr(ids, "generate_hex_id", fake_generate_hex_id)

    def reset():
        state["counter"] = itertools.count(1)

    return reset


@pytest.fixture
def legacy_policy():
    """Inbound numbers -> greeting action -> connect action -> finish."""
    return {
        "id": "a0B000000000001",
        "remoteId": "1001",
        "name": "Main routing",
        "description": "Office hours routing",
        "type": {"advanced": "POLICY_TYPE_CALL", "basic": "CALL"},
        "zoom": 1.2,
        "customFlag": True,
        "nodes": [
            {
                "id": "inbound",
                "x": 10,
                "y": -5,
                "templateId": 3,
                "templateClass": "ModNumber",
                "title": "Inbound Numbers",
                "name": "Main line",
                "outputConnectorsAllowed": True,
                "output": {"id": "inbound-out"},
                "subItems": [
                    {"id": "num-1", "name": "Sales &amp; Support", "templateId": 3,
                     "variables": {"publicNumber": "441234"}},
                    {"id": "num-2", "name": "Out of hours", "templateId": 3,
                     "variables": {"publicNumber": "445678"}},
                ],
            },
            {
                "id": "action",
                "x": 300,
                "y": 100,
                "templateId": 4,
                "templateClass": "ModAction",
                "title": "Action",
                "name": "Greeting",
                "inputConnectorsAllowed": True,
                "outputConnectorsAllowed": True,
                "input": {"id": "action-in"},
                "outputs": [
                    {"id": "say", "title": "Speak", "name": "Say hello", "templateId": 18},
                    {"id": "route", "title": "Rule", "name": "Route", "templateId": 124},
                ],
            },
            {
                "id": "connect",
                "x": 600,
                "y": 100,
                "templateId": 4,
                "templateClass": "ModAction",
                "title": "Action",
                "name": "Connect",
                "inputConnectorsAllowed": True,
                "outputConnectorsAllowed": True,
                "input": {"id": "connect-in"},
                "outputs": [
                    {"id": "call", "title": "Connect a Call", "name": "Call sales", "templateId": 118,
                     "connectId": "c-1", "config": {"devOrgId": None, "connectorId": "conn-0"}},
                ],
            },
            {
                "id": "finish-node",
                "x": 900,
                "y": 100,
                "templateId": 23,
                "templateClass": "ModFinish",
                "title": "Finish",
                "name": "Finish",
                "inputConnectorsAllowed": True,
                "input": {"id": "finish-in"},
            },
        ],
        "connections": [
            {"source": {"nodeID": "inbound", "id": "inbound-out"}, "dest": {"nodeID": "action", "id": "action-in"}},
            {"source": {"nodeID": "action", "id": "route"}, "dest": {"nodeID": "connect", "id": "connect-in"}},
            {"source": {"nodeID": "connect", "id": "call"}, "dest": {"nodeID": "finish-node", "id": "finish-in"}},
            {"source": {"nodeID": "ghost", "id": "ghost-out"}, "dest": {"nodeID": "action", "id": "action-in"}},
            {"source": {"nodeID": "inbound", "id": "inbound-out"}, "dest": {"nodeID": "action", "id": "action-in"}},
        ],
    }


@pytest.fixture
def linear_policy():
    """node1 -> node2 -> node3."""
    return Policy(
        name="Linear",
        nodes=[
            Node(id="node1", data=NodeData(label="One", name="One", connected_to="node2")),
            Node(id="node2", data=NodeData(
                label="Two", name="Two", connected_to="node3",
                connected_from_node="node1", connected_from_item="node1",
            )),
            Node(id="node3", data=NodeData(
                label="Three", name="Three",
                connected_from_node="node2", connected_from_item="node2",
            )),
        ],
        edges=[
            Edge(id="edge1", source="node1", target="node2"),
            Edge(id="edge2", source="node2", target="node3"),
        ],
    )


@pytest.fixture
def two_output_policy():
    """A container with two outputs; output1 feeds ``next``."""
    return Policy(
        name="Outputs",
        nodes=[
            Node(id="parent", data=NodeData(label="Parent", output_ids=["output1", "output2"]),
                 height=129, style={"height": 129}),
            Node(id="output1", kind=NodeKind.OUTPUT, parent_node="parent", position=Position(0, 33),
                 data=NodeData(label="First", connected_to="next")),
            Node(id="output2", kind=NodeKind.OUTPUT, parent_node="parent", position=Position(0, 66),
                 data=NodeData(label="Second", connected_to="finish")),
            Node(id="next", data=NodeData(
                label="Next", connected_from_node="parent", connected_from_item="output1",
            )),
        ],
        edges=[Edge(id="edge-output1-next", source="output1", target="next")],
    )


@pytest.fixture
def grouped_policy():
    """A container owning a group shell (head + sibling) and one plain output."""
    return Policy(
        name="Grouped",
        nodes=[
            Node(id="container", data=NodeData(label="Container", output_ids=["group", "plain"]),
                 height=129, style={"height": 129}),
            Node(id="group", kind=NodeKind.GROUP, parent_node="container", position=Position(0, 33),
                 data=NodeData(output_ids=["head", "sibling"])),
            Node(id="head", kind=NodeKind.OUTPUT, parent_node="group", head_of_group=True,
                 position=Position(0, 0), data=NodeData(label="Head", connected_to="finish")),
            Node(id="sibling", kind=NodeKind.OUTPUT, parent_node="group", position=Position(0, 33),
                 data=NodeData(label="Sibling", connected_to="dest")),
            Node(id="plain", kind=NodeKind.OUTPUT, parent_node="container", position=Position(0, 66),
                 data=NodeData(label="Plain", connected_to="finish")),
            Node(id="dest", data=NodeData(
                label="Dest", connected_from_node="container", connected_from_item="sibling",
            )),
        ],
        edges=[Edge(id="edge-sibling-dest", source="sibling", target="dest")],
    )
