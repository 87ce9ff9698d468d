def test_metrics_endpoint_returns_typed_payload(client, auth_headers):
    response = client.get("/metrics", headers=auth_headers["ops"])

    assert response.status_code == 200
    payload = response.json()
    assert isinstance(payload["counters"], dict)
    assert isinstance(payload["timings"], dict)


def test_metrics_endpoint_exposes_explicit_response_schema(client):
    openapi = client.get("/openapi.json")
    assert openapi.status_code == 200

    payload = openapi.json()
    metrics_get = payload["paths"]["/metrics"]["get"]

    assert metrics_get["responses"]["200"]["content"]["application/json"]["schema"]["$ref"] == (
        "#/components/schemas/MetricsResponse"
    )


def test_metrics_endpoint_requires_auth(client):
    response = client.get("/metrics")

    assert response.status_code == 401
    assert response.json()["detail"] == "Missing bearer token"


def test_metrics_endpoint_rejects_non_backoffice_role(client, auth_headers):
    response = client.get("/metrics", headers=auth_headers["rider_1"])

    assert response.status_code == 403
    assert response.json()["detail"] == "Insufficient role"


def test_metrics_capture_readiness_check_counters(client, auth_headers):
    ready = client.get("/ready")
    assert ready.status_code == 200

    metrics = client.get("/metrics", headers=auth_headers["ops"])
    assert metrics.status_code == 200

    counters = metrics.json().get("counters", {})
    assert int(counters.get("readiness_dependency_checked_total", 0)) >= 1
    assert int(counters.get("readiness_dependency_error_total", 0)) == 0


def test_metrics_capture_readiness_error_counter_on_degraded_check(
    client, auth_headers, monkeypatch
):
    from rider_dispatch.routers import health

    monkeypatch.setattr(health, "database_dependency_status", lambda *_a, **_k: "error")

    ready = client.get("/ready")
    assert ready.status_code == 503

    metrics = client.get("/metrics", headers=auth_headers["ops"])
    counters = metrics.json().get("counters", {})
    assert int(counters.get("readiness_dependency_error_total", 0)) >= 1
