from fastapi.testclient import TestClient

from coti_mcp.server import create_app


def test_health_endpoint(context):
    client = TestClient(create_app(context=context))
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json().get("status") == "ok"
    assert resp.headers.get("X-Request-ID")


def test_request_ids_are_unique(context):
    client = TestClient(create_app(context=context))
    first = client.get("/health").headers["X-Request-ID"]
    second = client.get("/health").headers["X-Request-ID"]
    assert first != second


def test_metrics_endpoint_counts_requests_and_tools(context):
    client = TestClient(create_app(context=context))
    client.get("/health")
    client.post("/tools/get_current_network", json={})
    client.post("/tools/change_default_account", json={"account_address": "0x" + "9" * 40})
    resp = client.get("/metrics")
    assert resp.status_code == 200
    data = resp.json()
    assert data["requests"] >= 4
    assert data["tool_success"] == {"get_current_network": 1}
    assert data["tool_error"] == {"change_default_account": 1}
    assert data["error_kinds"] == {"not_found": 1}
    assert len(data["recent_request_durations_ms"]) >= 3
