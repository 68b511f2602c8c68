"""
Tests for the Multimail demo HTTP service.

Services are initialized with fake transport clients before the
TestClient starts the app lifespan.
"""

import pytest
from fastapi.testclient import TestClient

from multimail.app.dependencies import get_dispatcher, initialize_services, shutdown_services
from multimail.app.main import REQUEST_ID_HEADER, create_app
from multimail.config import MailSettings
from multimail.errors import TransportError


def make_client(settings, factory):
    shutdown_services()
    initialize_services(settings, client_factory=factory)
    return TestClient(create_app())


def sent_by(identifier):
    return get_dispatcher().registry.resolve(identifier).client.sent


@pytest.fixture
def client(mail_settings, fake_client_factory):
    with make_client(mail_settings, fake_client_factory) as test_client:
        yield test_client
    shutdown_services()


@pytest.fixture
def simple_payload(sample_message):
    return dict(sample_message, cc=["bob@example.com"])


class TestSimpleSend:
    """Tests for POST /site/email/simple/send."""

    def test_sends_via_default(self, client, simple_payload):
        response = client.post("/site/email/simple/send", json=simple_payload)

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Simple email sent successfully."
        assert body["template"] == "default"
        assert body["recipients"] == ["alice@example.com", "bob@example.com"]
        assert len(sent_by("default")) == 1
        assert sent_by("EmailOffice365") == []

    def test_invalid_recipient(self, client, simple_payload):
        response = client.post("/site/email/simple/send", json=dict(simple_payload, to="nope"))

        assert response.status_code == 422
        assert sent_by("default") == []

    def test_transport_failure_is_502(self, client, simple_payload):
        get_dispatcher().registry.default.client.fail_with = TransportError("relay denied")

        response = client.post("/site/email/simple/send", json=simple_payload)

        assert response.status_code == 502
        assert response.json()["error"] == "TransportError"
        assert response.json()["template"] == "default"

    def test_request_id_echoed(self, client, simple_payload):
        response = client.post(
            "/site/email/simple/send",
            json=simple_payload,
            headers={REQUEST_ID_HEADER: "req-123"},
        )

        assert response.headers[REQUEST_ID_HEADER] == "req-123"

    def test_request_id_generated(self, client, simple_payload):
        response = client.post("/site/email/simple/send", json=simple_payload)

        assert response.headers[REQUEST_ID_HEADER]


class TestMimeSend:
    """Tests for POST /site/email/mime/send."""

    def test_marked_route_uses_office365(self, client):
        response = client.post(
            "/site/email/mime/send",
            data={"to": "alice@example.com", "subject": "Report", "text": "<p>Attached</p>"},
            files={"file": ("a.png", b"\x89PNG data", "image/png")},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["template"] == "EmailOffice365"
        assert body["attachment_count"] == 1
        sent = sent_by("EmailOffice365")[0]
        assert sent.get_content_type() == "multipart/mixed"
        assert [p.get_filename() for p in sent.iter_attachments()] == ["a.png"]
        assert sent_by("default") == []

    def test_upload_and_filepath(self, client, tmp_path):
        path = tmp_path / "b.png"
        path.write_bytes(b"\x89PNG file")

        response = client.post(
            "/site/email/mime/send",
            data={
                "to": "alice@example.com",
                "subject": "Report",
                "text": "Two files",
                "filepath": str(path),
            },
            files={"file": ("a.png", b"\x89PNG upload", "image/png")},
        )

        assert response.status_code == 200
        sent = sent_by("EmailOffice365")[0]
        assert [p.get_filename() for p in sent.iter_attachments()] == ["a.png", "b.png"]

    def test_invalid_recipient_is_422(self, client):
        response = client.post(
            "/site/email/mime/send",
            data={"to": "nope", "subject": "Report", "text": "x"},
        )

        assert response.status_code == 422
        assert response.json()["error"] == "MessageValidationError"
        assert response.json()["errors"][0]["loc"] == ["to"]
        assert sent_by("EmailOffice365") == []

    def test_falls_back_when_template_missing(self, default_config, fake_client_factory):
        settings = MailSettings(mail=default_config)

        with make_client(settings, fake_client_factory) as test_client:
            response = test_client.post(
                "/site/email/mime/send",
                data={"to": "alice@example.com", "subject": "Report", "text": "x"},
            )
            assert response.status_code == 200
            assert response.json()["template"] == "default"
            assert len(sent_by("default")) == 1
        shutdown_services()


class TestNestedSend:
    """Tests for POST /site/email/simple/send/nested."""

    def test_uses_marked_template(self, client):
        response = client.post("/site/email/simple/send/nested")

        assert response.status_code == 200
        assert response.json()["template"] == "EmailOffice365"
        sent = sent_by("EmailOffice365")[0]
        assert sent["To"] == "test@example.com"
        assert sent["Subject"] == "Test Subject from Nested Call"

    def test_marker_does_not_leak_to_next_request(self, client, simple_payload):
        client.post("/site/email/simple/send/nested")
        response = client.post("/site/email/simple/send", json=simple_payload)

        assert response.json()["template"] == "default"


class TestServiceEndpoints:
    """Tests for / and /health."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "multimail"

    def test_health(self, client):
        response = client.get("/health")

        body = response.json()
        assert body["status"] == "healthy"
        assert body["templates"] == ["default", "EmailOffice365", "EmailMarketing"]
        assert body["pool"]["maximum_pool_size"] == 4
