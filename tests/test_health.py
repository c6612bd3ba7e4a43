# tests/test_health.py
from typing import Any


def test_health_reports_ok(client: Any) -> None:
    """The health endpoint answers without touching the database."""
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_root_describes_service(client: Any) -> None:
    r = client.get("/")
    assert r.status_code == 200
    body = r.json()
    assert body["docs"] == "/docs"
    assert "name" in body and "version" in body
