"""Tests for the HTTP API."""
import json

import pytest
from fastapi.testclient import TestClient

from policy_editor.engine.importer import import_policy
from policy_editor.main import app


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def graph(legacy_policy):
    return import_policy(legacy_policy).to_dict()


def _node(policy, node_id):
    return next(n for n in policy["nodes"] if n["id"] == node_id)


class TestMeta:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_templates(self, client):
        catalog = client.get("/api/templates").json()
        assert 23 in catalog["finish_templates"]
        assert catalog["template_class_kinds"]["ModFinish"] == "end"


class TestImport:
    def test_import(self, client, legacy_policy):
        response = client.post("/api/policies/import", json={"policy": legacy_policy})
        assert response.status_code == 200
        policy = response.json()
        assert len(policy["nodes"]) == 10
        assert len(policy["edges"]) == 3
        assert _node(policy, "say")["parentNode"] == "action"

    def test_new_policy(self, client):
        policy = client.post("/api/policies/import", json={"policy": None, "isNew": True}).json()
        assert [n["id"] for n in policy["nodes"]] == ["init_node"]


class TestEdits:
    def test_remove_nodes(self, client, graph):
        response = client.post("/api/policies/remove-nodes", json={"policy": graph, "selectedNodes": ["say"]})
        body = response.json()
        assert response.status_code == 200
        assert body["newActiveNode"]["id"] == "action"
        assert body["blockedNodes"] == []
        assert _node(body["policy"], "route")["position"]["y"] == 33
        assert _node(body["policy"], "action")["data"]["outputIds"] == ["route"]

    def test_remove_system_node_is_blocked(self, client, graph):
        _node(graph, "connect")["data"]["type"] = "SYSTEM"
        body = client.post("/api/policies/remove-nodes", json={"policy": graph, "selectedNodes": ["connect"]}).json()
        assert body["blockedNodes"] == ["connect"]
        assert any(n["id"] == "connect" for n in body["policy"]["nodes"])

    def test_remove_edge(self, client, graph):
        body = client.post("/api/policies/remove-edge", json={"policy": graph, "edge": graph["edges"][0]}).json()
        assert len(body["edges"]) == 2
        assert _node(body, "inbound")["data"]["connectedTo"] == "finish"

    def test_add_outputs(self, client, graph):
        output = {
            "id": "new-out",
            "type": "output",
            "parentNode": "connect",
            "position": {"x": 0, "y": 66},
            "data": {"label": "New", "connectedTo": "finish"},
        }
        policy = client.post("/api/policies/outputs", json={"policy": graph, "outputs": [output]}).json()
        connect = _node(policy, "connect")
        assert connect["data"]["outputIds"] == ["call", "new-out"]
        assert connect["height"] == 129

    def test_add_outputs_errors(self, client, graph):
        assert client.post("/api/policies/outputs", json={"policy": graph, "outputs": []}).status_code == 400
        orphan = {"id": "x", "type": "output", "parentNode": "ghost"}
        assert client.post("/api/policies/outputs", json={"policy": graph, "outputs": [orphan]}).status_code == 404

    def test_place_container(self, client, graph):
        template = {"id": "rule", "data": {"label": "Rule", "templateId": 124}}
        policy = client.post(
            "/api/policies/containers",
            json={"policy": graph, "template": template, "activeNodeId": "action"},
        ).json()
        assert _node(policy, "action")["data"]["outputIds"] == ["say", "route", "rule"]
        assert _node(policy, "rule")["type"] == "output"


class TestSave:
    def test_validate(self, client, graph):
        assert client.post("/api/policies/validate", json=graph).json() == {"valid": True, "errors": []}
        graph["name"] = ""
        assert client.post("/api/policies/validate", json=graph).json() == {
            "valid": False, "errors": ["Policy name is required"],
        }

    def test_payload(self, client, graph):
        response = client.post("/api/policies/payload", json={
            "policy": graph,
            "config": {"DevOrgId__c": "org-1", "ConnectorId__c": "conn-1"},
        })
        assert response.status_code == 200
        body = response.json()
        payload = body["payload"]
        assert payload["PhoneNumbers__c"] == "441234,445678"
        assert payload["Type__c"] == "POLICY_TYPE_CALL"
        document = json.loads(payload["Policy__c"])
        assert document["items"][-1]["id"] == body["finishId"]
        saved = json.loads(payload["Body__c"])
        call = _node(saved, "connect")["outputs"][0]
        assert call["config"] == {"devOrgId": "org-1", "connectorId": "conn-1"}

    def test_invalid_payload_is_rejected(self, client, graph):
        graph["name"] = ""
        response = client.post("/api/policies/payload", json={"policy": graph})
        assert response.status_code == 422
        assert response.json()["detail"] == ["Policy name is required"]


class TestClone:
    def test_clone(self, client, legacy_policy):
        body = client.post("/api/policies/clone", json={"policy": legacy_policy}).json()
        assert body["policy"]["Name"] == "Main routing"
        assert body["policy"]["Id"] is None
        assert _node(body["policy"], "inbound")["subItems"] == []
        assert "Removed Public Number: Sales &amp; Support / 441234" in body["report"]["messages"]

    def test_clone_without_nodes(self, client):
        assert client.post("/api/policies/clone", json={"policy": {"name": "Empty"}}).status_code == 400
