"""Tests for the HTTP API"""

import inspect

import pytest
from fastapi.routing import APIRoute
from fastapi.testclient import TestClient

from approval_engine.main import create_app

API = "/api/v1"


@pytest.fixture
def client(manager):
    return TestClient(create_app(manager=manager))


def create(client, request_type="budget_approval", requester_id="alice", **extra):
    body = {"request_type": request_type, "requester_id": requester_id, "priority": "high"}
    body.update(extra)
    response = client.post(f"{API}/workflows", json=body)
    assert response.status_code == 201, response.text
    return response.json()["instance_id"]


def current_step_id(client, instance_id):
    instance = client.get(f"{API}/workflows/{instance_id}").json()["instance"]
    return instance["steps"][instance["current_step"] - 1]["step_id"]


class TestWorkflowRoutes:
    def test_create_and_get(self, client):
        instance_id = create(client, payload={"amount": 12000}, workflow_name="Figma seats")
        response = client.get(f"{API}/workflows/{instance_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["instance"]["status"] == "pending"
        assert body["instance"]["workflow_name"] == "Figma seats"
        assert body["instance"]["is_overdue"] is False
        assert len(body["instance"]["steps"]) == 3
        assert [e["action"] for e in body["audit_entries"]] == ["CREATED", "STEP_ACTIVATED"]

    def test_full_approval(self, client):
        instance_id = create(client)
        for actor in ("fin-mgr", "it-dir", "ceo-1"):
            response = client.post(
                f"{API}/workflows/{instance_id}/approve",
                json={"step_id": current_step_id(client, instance_id), "actor_id": actor}
            )
            assert response.status_code == 200, response.text

        body = response.json()
        assert body["status"] == "approved"
        assert body["current_step"] is None
        assert body["completed_at"] is not None

    def test_reject_requires_comment(self, client):
        instance_id = create(client)
        response = client.post(
            f"{API}/workflows/{instance_id}/reject",
            json={"step_id": current_step_id(client, instance_id), "actor_id": "fin-mgr", "comment": " "}
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_reject(self, client):
        instance_id = create(client, request_type="software_declaration", priority="medium")
        response = client.post(
            f"{API}/workflows/{instance_id}/reject",
            json={"step_id": current_step_id(client, instance_id), "actor_id": "mgr-eng",
                  "comment": "insufficient justification"}
        )
        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        assert response.json()["steps"][1]["status"] == "not_started"

    def test_wrong_actor_is_conflict(self, client):
        instance_id = create(client)
        response = client.post(
            f"{API}/workflows/{instance_id}/approve",
            json={"step_id": current_step_id(client, instance_id), "actor_id": "ceo-1"}
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_TRANSITION"

    def test_cancel_and_skip(self, client):
        instance_id = create(client)
        skipped = client.post(
            f"{API}/workflows/{instance_id}/skip",
            json={"step_id": current_step_id(client, instance_id), "actor_id": "admin-1", "comment": "on leave"}
        )
        assert skipped.status_code == 200
        assert skipped.json()["current_step"] == 2

        cancelled = client.post(f"{API}/workflows/{instance_id}/cancel", json={"actor_id": "alice"})
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"

    def test_unknown_workflow(self, client):
        response = client.get(f"{API}/workflows/WFI-missing")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "WORKFLOW_NOT_FOUND"

    def test_no_approver(self, client):
        response = client.post(
            f"{API}/workflows", json={"request_type": "user_invitation", "requester_id": "nodept"}
        )
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "NO_APPROVER_AVAILABLE"

    def test_invalid_request_type(self, client):
        response = client.post(f"{API}/workflows", json={"request_type": "lunch", "requester_id": "alice"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_list_and_filter(self, client):
        budget = create(client, priority="urgent")
        invite = create(client, request_type="user_invitation", requester_id="sam")

        everything = client.get(f"{API}/workflows").json()
        assert everything["count"] == 2

        by_type = client.get(f"{API}/workflows", params={"request_type": "user_invitation"}).json()
        assert [i["instance_id"] for i in by_type["items"]] == [invite]

        by_approver = client.get(f"{API}/workflows", params={"approver_id": "fin-mgr"}).json()
        assert [i["instance_id"] for i in by_approver["items"]] == [budget]

        by_search = client.get(f"{API}/workflows", params={"search": "ortiz"}).json()
        assert [i["instance_id"] for i in by_search["items"]] == [invite]

    def test_stats(self, client):
        create(client)
        response = client.get(f"{API}/workflows/stats")
        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["pending"] == 1

    def test_correlation_id_is_echoed(self, client):
        response = client.get(f"{API}/workflows", headers={"X-Correlation-Id": "COR-abc"})
        assert response.headers["X-Correlation-Id"] == "COR-abc"


class TestMiscRoutes:
    def test_templates(self, client):
        response = client.get(f"{API}/templates")
        assert response.status_code == 200
        ids = {t["template_id"] for t in response.json()}
        assert "TPL-budget-approval" in ids
        assert "TPL-software-declaration-urgent" in ids

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, client):
        assert client.get("/").json()["name"] == "License Approval Workflow Engine"

    def test_store_bound_handlers_run_in_threadpool(self, client):
        api_routes = [r for r in client.app.routes if isinstance(r, APIRoute) and r.path.startswith(API)]
        assert api_routes
        assert not [r.path for r in api_routes if inspect.iscoroutinefunction(r.endpoint)]
