import json
import logging

from fastapi.testclient import TestClient

from core.logging_config import JSONFormatter


class TestApp:
    """Application wiring"""

    def test_health(self, client):
        resp = client.get("/health")

        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"

    def test_openapi_has_bearer_scheme(self, client):
        schema = client.get("/openapi.json").json()

        assert "BearerAuth" in schema["components"]["securitySchemes"]
        assert "/webhooks/paystack" in schema["paths"]

    def test_unexpected_errors_hidden(self, app):
        @app.get("/boom")
        def boom():
            raise RuntimeError("secret internals")

        resp = TestClient(app, raise_server_exceptions=False).get("/boom")

        assert resp.status_code == 500
        assert resp.json() == {"detail": "Internal server error"}


class TestJSONFormatter:
    """Structured log lines"""

    def test_extra_fields_included(self):
        record = logging.LogRecord("services.test", logging.INFO, __file__, 10, "paid %s", ("REF-1",), None)
        record.reference = "REF-1"

        line = json.loads(JSONFormatter().format(record))

        assert line["message"] == "paid REF-1"
        assert line["level"] == "INFO"
        assert line["reference"] == "REF-1"
