import json

import pytest
from langchain_core.language_models import FakeListChatModel

import agent_graph
import app as app_module
from repair_errors import DuplicateIdentifierError


@pytest.fixture
def client(monkeypatch):
    monkeypatch.delenv("WORKFLOW_REPAIR_RULES", raising=False)
    flask_app = app_module.create_app()
    flask_app.config["TESTING"] = True
    return flask_app.test_client()


def fake_llm(monkeypatch, *responses):
    model = FakeListChatModel(responses=list(responses))
    monkeypatch.setattr(agent_graph, "get_llm", lambda: model)


GENERATED = {
    "explanation": "Store valid leads",
    "nodes": [
        {"id": "node-1", "data": {"type": "form", "label": "Contact Form"}},
        {"id": "node-2", "data": {"type": "if", "label": "Is Lead Valid?"}},
        {"id": "node-3", "data": {"type": "gsheets", "label": "Save Valid Lead"}},
        {"id": "node-4", "data": {"type": "stop_and_error", "label": "Reject Invalid Lead"}},
    ],
    "edges": [
        {"source": "node-1", "target": "node-2"},
        {"source": "node-2", "target": "node-3"},
        {"source": "node-2", "target": "node-4"},
    ],
}


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json() == {"status": "healthy"}


class TestRepairEndpoint:
    def test_repairs_graph(self, client):
        response = client.post("/api/repair_workflow", json=GENERATED)

        assert response.status_code == 200
        body = response.get_json()
        assert len(body["nodes"]) == 4
        assert body["explanation"] == "Store valid leads"
        assert isinstance(body["notes"], list)

    def test_rejects_non_object(self, client):
        response = client.post("/api/repair_workflow", data="nope", content_type="text/plain")
        assert response.status_code == 400

    def test_integrity_failure_is_422(self, client, monkeypatch):
        def broken(*args, **kwargs):
            raise DuplicateIdentifierError(["node_1"], [])

        monkeypatch.setattr(app_module, "repair_workflow", broken)

        response = client.post("/api/repair_workflow", json=GENERATED)

        assert response.status_code == 422
        assert response.get_json()["node_ids"] == ["node_1"]


class TestValidateEndpoint:
    def test_reports_issues(self, client):
        response = client.post("/api/validate_workflow", json={
            "nodes": [{"id": "t", "data": {"type": "webhook"}}, {"id": "a", "data": {"type": "email"}}],
            "edges": [{"source": "t", "target": "ghost"}],
        })

        body = response.get_json()
        assert response.status_code == 200
        assert body["edges"] == []
        assert body["warnings"] == ["Removed 1 invalid edge(s) referencing non-existent nodes"]
        assert body["topology"]["valid"] is False
        assert [i["node_id"] for i in body["issues"]] == ["a"]

    def test_rejects_non_object(self, client):
        assert client.post("/api/validate_workflow", json=[1, 2]).status_code == 400


class TestGenerateEndpoint:
    def test_prompt_required(self, client):
        assert client.post("/api/generate_workflow", json={}).status_code == 400

    def test_generated_graph_is_repaired(self, client, monkeypatch):
        fake_llm(monkeypatch, "```json\n" + json.dumps(GENERATED) + "\n```")

        response = client.post("/api/generate_workflow", json={"prompt": "Save leads from a form"})

        body = response.get_json()
        assert body["status"] == "success"
        graph = body["results"]["graph"]
        labels = {n["id"]: n["data"]["label"] for n in graph["nodes"]}
        branch = [e for e in graph["edges"] if labels[e["source"]] == "Is Lead Valid?"]
        assert sorted(e["sourceHandle"] for e in branch) == ["false", "true"]
        assert body["messages"][-1] == "Workflow generated with 4 nodes."

    def test_export_format_is_unwrapped(self, client, monkeypatch):
        exported = {"workflows": [{"description": "Leads", "workflow_data": GENERATED}]}
        fake_llm(monkeypatch, json.dumps(exported))

        body = client.post("/api/generate_workflow", json={"prompt": "leads"}).get_json()

        assert body["status"] == "success"
        assert body["results"]["graph"]["explanation"] == "Leads"

    def test_unparseable_answer(self, client, monkeypatch):
        fake_llm(monkeypatch, "I cannot do that")

        body = client.post("/api/generate_workflow", json={"prompt": "x"}).get_json()

        assert body["status"] == "error"
        assert body["results"]["error"] == "json_parse_error"

    def test_non_object_answer(self, client, monkeypatch):
        fake_llm(monkeypatch, "[1, 2, 3]")

        body = client.post("/api/generate_workflow", json={"prompt": "x"}).get_json()

        assert body["results"]["error"] == "json_structure_error"
