"""
API tests through the FastAPI test client.
"""

import pytest

from factory_ops.config import get_config
from factory_ops.errors import ConcurrentUpdateError
from factory_ops.services import schedule as schedule_service

from conftest import make_order


RULE = {
    "name": "Blocked orders",
    "trigger": {"type": "dependency_blocked", "conditions": {"threshold": 1}},
    "action": {"type": "create_log", "params": {"logMessage": "orders blocked"}},
    "debounceMinutes": 30,
}


class TestOrdersApi:

    def test_list_orders(self, client, seeded_orders):
        response = client.get("/api/orders")
        assert response.status_code == 200
        assert [o["order_id"] for o in response.json()] == ["A", "B", "C", "D"]

    def test_schedule(self, client, seeded_orders):
        response = client.get("/api/orders/schedule")
        assert response.status_code == 200
        body = response.json()
        assert body["critical_path"] == ["A", "B", "D"]
        assert body["orders"]["C"]["is_critical"] is False

    def test_blocked(self, client, seeded_orders):
        response = client.get("/api/orders/blocked")
        assert {o["order_id"] for o in response.json()} == {"B", "C", "D"}

    def test_add_dependency(self, client, seeded_orders):
        response = client.post("/api/orders/C/dependencies", json={"dependency_id": "B"})
        assert response.status_code == 200
        assert response.json()["dependencies"] == ["A", "B"]

    def test_cyclic_dependency_conflict(self, client, seeded_orders):
        response = client.post("/api/orders/A/dependencies", json={"dependency_id": "D"})
        assert response.status_code == 409
        assert response.json()["detail"]["path"][0] == "A"

    @pytest.mark.parametrize("order_id,dependency_id,status", [
        ("GHOST", "A", 404),
        ("A", "GHOST", 422),
        ("A", "A", 409),
    ])
    def test_rejections(self, client, seeded_orders, order_id, dependency_id, status):
        response = client.post(f"/api/orders/{order_id}/dependencies", json={"dependency_id": dependency_id})
        assert response.status_code == status

    def test_schedule_computation_error_is_structured(self, client, session, seeded_orders):
        session.add(make_order("N", hours=-3))
        session.commit()
        response = client.get("/api/orders/schedule")
        assert response.status_code == 422
        assert response.json()["detail"]["message"].startswith("Schedule unavailable")

    def test_concurrent_update_is_409(self, client, seeded_orders, monkeypatch):
        def lost_race(session, order, deps):
            raise ConcurrentUpdateError(f"Order {order.order_id} was modified concurrently; retry the request")

        monkeypatch.setattr(schedule_service, "_write_dependencies", lost_race)
        response = client.post("/api/orders/C/dependencies", json={"dependency_id": "B"})
        assert response.status_code == 409
        assert "concurrently" in response.json()["detail"]

    def test_remove_dependency(self, client, seeded_orders):
        response = client.delete("/api/orders/D/dependencies/C")
        assert response.status_code == 200
        assert response.json()["dependencies"] == ["B"]


class TestRulesApi:

    def test_create_list_get(self, client):
        created = client.post("/api/rules", json=RULE)
        assert created.status_code == 201
        rule_id = created.json()["id"]

        assert [r["id"] for r in client.get("/api/rules").json()] == [rule_id]
        assert client.get(f"/api/rules/{rule_id}").json()["debounceMinutes"] == 30

    def test_invalid_rule_is_422(self, client):
        response = client.post("/api/rules", json={**RULE, "trigger": {"type": "moon_phase"}})
        assert response.status_code == 422
        assert "moon_phase" in response.json()["detail"]["message"]

    def test_unknown_rule_is_404(self, client):
        assert client.get("/api/rules/NOPE").status_code == 404
        assert client.post("/api/rules/NOPE/test").status_code == 404

    def test_test_endpoint_reports_three_outcomes(self, client, seeded_orders):
        rule_id = client.post("/api/rules", json=RULE).json()["id"]

        first = client.post(f"/api/rules/{rule_id}/test").json()
        assert first["outcome"] == "triggered"
        assert first["action"]["message"] == "Log entry created"

        second = client.post(f"/api/rules/{rule_id}/test").json()
        assert second["outcome"] == "skipped"

        quiet = client.post("/api/rules", json={
            **RULE,
            "name": "Many unstaffed",
            "trigger": {"type": "missing_operator", "conditions": {"threshold": 5}},
        }).json()["id"]
        assert client.post(f"/api/rules/{quiet}/test").json()["outcome"] == "not_triggered"

        executions = client.get("/api/rules/executions", params={"rule_id": rule_id}).json()
        assert [e["status"] for e in executions] == ["success"]

    def test_update_and_toggle(self, client):
        rule_id = client.post("/api/rules", json=RULE).json()["id"]
        updated = client.put(f"/api/rules/{rule_id}", json={"debounceMinutes": 5})
        assert updated.status_code == 200
        assert updated.json()["debounceMinutes"] == 5
        assert client.post(f"/api/rules/{rule_id}/toggle").json()["enabled"] is False

    def test_delete(self, client):
        rule_id = client.post("/api/rules", json=RULE).json()["id"]
        assert client.delete(f"/api/rules/{rule_id}").status_code == 204
        assert client.get(f"/api/rules/{rule_id}").status_code == 404

    def test_import_defaults_and_evaluate(self, client, seeded_orders):
        assert client.post("/api/rules/import-defaults").json()["imported"] == 8
        body = client.post("/api/rules/evaluate").json()
        # The disabled auto-learning rule is not evaluated
        assert body["evaluated"] == 7
        assert sum(body["summary"].values()) == 7

    def test_dry_run_toggle(self, client):
        response = client.post("/api/rules/config/dry-run", params={"enabled": True})
        assert response.json() == {"dry_run": True, "write_enabled": False}
        assert get_config().WRITE_ENABLED is False
        assert client.get("/api/rules/config").json()["dry_run"] is True

    def test_runner_status_when_idle(self, client):
        body = client.get("/api/rules/runner/status").json()
        assert body["running"] is False
        assert client.post("/api/rules/runner/stop").json() == {"status": "not_running"}
