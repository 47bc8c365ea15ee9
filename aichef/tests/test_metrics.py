import json

from aichef.core.metrics import METRICS, Counter, normalize_path
from aichef.tests.mocks import checkout_completed_event


def test_counter_export_format():
    counter = Counter("demo_total", ["kind"])
    counter.inc({"kind": 'a"b'})
    counter.inc({"kind": 'a"b'}, amount=2)

    lines = counter.export()
    assert lines[0] == "# TYPE demo_total counter"
    assert lines[1] == 'demo_total{kind="a\\"b"} 3.0'


def test_normalize_path_hides_ids():
    assert normalize_path("/api/premium/status") == "/api/premium/status"
    assert normalize_path("/api/users/cus_N1x2y3z4/sessions/42") == "/api/users/:id/sessions/:id"
    assert normalize_path("/api/stripeCheckoutSessions/a1B2c3D4e5F6g7H8i9J0") == "/api/stripeCheckoutSessions/:id"


def test_metrics_endpoint_reports_webhook_outcomes(client):
    client.post(
        "/api/billing/webhook",
        content=json.dumps(checkout_completed_event()).encode("utf-8"),
        headers={"stripe-signature": "valid"},
    )

    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert 'billing_webhook_events_total{kind="checkout.session.completed",outcome="applied"} 1.0' in resp.text
    assert 'http_requests_total{method="POST",path="/api/billing/webhook",status="200"} 1.0' in resp.text


def test_rejected_webhook_is_counted_by_error_code(client):
    client.post(
        "/api/billing/webhook",
        content=json.dumps(checkout_completed_event(user_id=None)).encode("utf-8"),
        headers={"stripe-signature": "valid"},
    )
    counter = METRICS.counter("billing_webhook_events_total")
    assert counter.value({"kind": "checkout.session.completed", "outcome": "correlation_error"}) == 1
