"""Tests for building the save payload."""
import json

import pytest

from policy_editor.engine.catalog import TemplateCatalog
from policy_editor.engine.graph import FINISH, Edge, Node, NodeData, NodeKind, Policy, Position, make_init_node
from policy_editor.engine.importer import import_policy
from policy_editor.engine.payload import (
    build_payload,
    build_phone_numbers,
    build_policy_document,
    filter_payload_nodes,
    map_edges_to_connections,
    omit_connect_and_screen_ids,
    process_payload_items,
    update_output_config_if_exists,
)
from policy_editor.models.schemas import ConnectorConfig


@pytest.fixture
def connector():
    return ConnectorConfig(id="cfg", dev_org_id="org-1", connector_id="conn-1")


class TestPhoneNumbers:
    def test_joins_public_numbers(self):
        nodes = [
            {"templateId": 3, "subItems": [
                {"variables": {"publicNumber": "12345"}},
                {"variables": {"publicNumber": "67890"}},
            ]},
            {"templateId": 4, "subItems": [{"variables": {"publicNumber": "11111"}}]},
        ]
        assert build_phone_numbers(nodes) == "12345,67890"

    def test_empty(self):
        assert build_phone_numbers([]) == ""

    def test_nested_data_and_nodes(self):
        nodes = [
            {"data": {"templateId": 3, "subItems": [{"variables": {"publicNumber": "1"}}]}},
            Node(id="n", data=NodeData(template_id=3, sub_items=[{"variables": {"publicNumber": "2"}}])),
        ]
        assert build_phone_numbers(nodes) == "1,2"


class TestBuildPayload:
    def test_documents(self, fixed_ids, legacy_policy, connector):
        policy = import_policy(legacy_policy)
        payload = build_payload(policy, connector)
        body = json.loads(payload.body)
        document = json.loads(payload.policy)

        assert payload.name == "Main routing"
        assert payload.type == "POLICY_TYPE_CALL"
        assert payload.phone_numbers == "441234,445678"
        assert payload.remote_id == "1001"

        assert [n["id"] for n in body["nodes"]] == ["inbound", "action", "connect", "finish-node"]
        assert body["type"] == {"advanced": "POLICY_TYPE_CALL", "basic": "CALL"}
        assert body["customFlag"] is True
        assert body["finishId"] == policy.finish_id

        assert document["type"] == "CALL"
        assert document["enabled"] is True
        assert [i["name"] for i in document["items"]] == ["Main line", "Greeting", "Connect", "Finish", "Finish"]
        finish_item = document["items"][-1]
        assert finish_item["templateId"] == 23
        assert finish_item["id"] == policy.finish_id

    def test_finish_id_is_written_back_and_reused(self, fixed_ids, legacy_policy):
        policy = import_policy(legacy_policy)
        first = build_payload(policy)
        assert policy.finish_id == "id-1"
        second = build_payload(policy)
        assert json.loads(first.policy)["items"][-1]["id"] == json.loads(second.policy)["items"][-1]["id"]

    def test_null_connector_config_is_filled(self, fixed_ids, legacy_policy, connector):
        body = json.loads(build_payload(import_policy(legacy_policy), connector).body)
        connect = next(n for n in body["nodes"] if n["id"] == "connect")
        call = connect["outputs"][0]
        assert call["config"] == {"devOrgId": "org-1", "connectorId": "conn-1"}
        assert call["connectId"] == "c-1"
        assert call["type"] == "CALL"
        assert "label" not in call

    def test_inbound_sub_items_get_template_id(self, fixed_ids, legacy_policy):
        body = json.loads(build_payload(import_policy(legacy_policy)).body)
        inbound = body["nodes"][0]
        assert {s["templateId"] for s in inbound["subItems"]} == {3}

    def test_finish_template_follows_policy_type(self, fixed_ids):
        policy = Policy(name="Analytics", policy_type="POLICY_TYPE_DATA_ANALYTICS", nodes=[make_init_node()])
        document = json.loads(build_payload(policy).policy)
        assert document["type"] == "NON_CALL"
        assert document["items"] == [{
            "id": "id-1", "name": "Finish", "templateId": 58, "variables": None, "subItems": [],
        }]

    def test_navigator_index_zero_survives_a_save(self, fixed_ids, legacy_policy):
        legacy_policy["navigatorPositionIndex"] = 0
        body = json.loads(build_payload(import_policy(legacy_policy)).body)
        assert body["navigatorPositionIndex"] == 0

    def test_connections_survive_a_reimport(self, fixed_ids, legacy_policy):
        imported = import_policy(legacy_policy)
        body = json.loads(build_payload(imported).body)
        reimported = import_policy(body)
        assert [(e.source, e.target) for e in reimported.edges] == [(e.source, e.target) for e in imported.edges]
        assert reimported.get_node("action").data.output_ids == ["say", "route"]


class TestConnections:
    def test_output_source_reported_under_container(self, two_output_policy):
        [connection] = map_edges_to_connections(two_output_policy.edges, two_output_policy.nodes)
        assert connection == {
            "source": {"nodeID": "parent", "id": "output1"},
            "dest": {"nodeID": "next", "id": "next"},
        }

    def test_grouped_output_reported_under_grandparent(self, grouped_policy):
        [connection] = map_edges_to_connections(grouped_policy.edges, grouped_policy.nodes)
        assert connection["source"] == {"nodeID": "container", "id": "sibling"}

    def test_plain_source_uses_its_handle(self):
        nodes = [
            Node(id="a", data=NodeData(output_handle="a-out")),
            Node(id="b", data=NodeData(input_handle="b-in")),
        ]
        [connection] = map_edges_to_connections([Edge(id="e", source="a", target="b")], nodes)
        assert connection == {"source": {"nodeID": "a", "id": "a-out"}, "dest": {"nodeID": "b", "id": "b-in"}}


class TestPolicyItems:
    def test_only_first_output_keeps_container_parent_id(self, fixed_ids):
        policy = Policy(
            name="Quirk",
            finish_id="fin",
            nodes=[
                Node(id="c", data=NodeData(name="Container", template_id=4, output_ids=["o1", "o2"])),
                Node(id="o1", kind=NodeKind.OUTPUT, parent_node="c", parent_id="c",
                     data=NodeData(label="One", connected_to=FINISH)),
                Node(id="o2", kind=NodeKind.OUTPUT, parent_node="c", parent_id="c", position=Position(0, 66),
                     data=NodeData(label="Two", connected_to=FINISH)),
            ],
        )
        [item, finish] = build_policy_document(policy)["items"]
        assert [o["parentId"] for o in item["outputs"]] == ["c", "id-1"]
        assert [o["name"] for o in item["outputs"]] == ["One", "Two"]
        assert item["finishId"] == "fin"
        assert finish["id"] == "fin"

    def test_group_outputs_are_flattened(self, grouped_policy):
        grouped_policy.finish_id = "fin"
        grouped_policy.get_node("container").data.name = "Container"
        grouped_policy.get_node("dest").data.name = "Dest"
        items = build_policy_document(grouped_policy)["items"]
        assert [o["id"] for o in items[0]["outputs"]] == ["head", "sibling", "plain"]

    def test_next_id_is_dropped_for_rule_items(self):
        items = [
            {"id": "a", "templateId": 124, "variables": {"nextId": "b", "keep": 1}},
            {"id": "b", "templateId": 140, "subItems": [{"id": "s", "parentNode": "b"}]},
        ]
        processed = process_payload_items(items)
        assert processed[0]["variables"] == {"keep": 1}
        assert processed[1]["subItems"] == [{"id": "s"}]
        assert items[0]["variables"]["nextId"] == "b"

    def test_pass_through_templates_come_from_the_catalog(self):
        items = [
            {"id": "a", "templateId": 77, "subItems": [{"id": "s", "parentNode": "a"}]},
            {"id": "b", "templateId": 4},
        ]
        assert process_payload_items(items)[0]["subItems"] == [{"id": "s", "parentNode": "a"}]
        catalog = TemplateCatalog(pass_through_templates=[77])
        assert process_payload_items(items, catalog)[0]["subItems"] == [{"id": "s"}]


class TestRecordHelpers:
    def test_filter_drops_init_and_children(self, two_output_policy):
        two_output_policy.nodes.insert(0, make_init_node())
        two_output_policy.get_node("parent").data.template_id = 4
        two_output_policy.get_node("next").data.type = "SYSTEM"
        assert [n.id for n in filter_payload_nodes(two_output_policy)] == ["parent", "next"]

    def test_connect_ids_kept_only_for_connect_titles(self):
        record = {"title": "Speak", "connectId": "c", "screenId": "s", "label": "x", "name": "n"}
        assert omit_connect_and_screen_ids(record) == {"title": "Speak", "name": "n"}
        record["title"] = "Hunt Group"
        assert omit_connect_and_screen_ids(record)["connectId"] == "c"

    def test_config_only_filled_when_explicitly_null(self, connector):
        missing = {"other": 1}
        update_output_config_if_exists(missing, connector)
        assert missing == {"other": 1}

        explicit = {"connectorId": None}
        update_output_config_if_exists(explicit, connector)
        assert explicit == {"connectorId": "conn-1", "devOrgId": "org-1"}
