"""
Pytest configuration and fixtures for Multimail tests.
"""

import sys
import threading
from pathlib import Path

import pytest

# Add the repository root to path for imports
# This allows `from multimail import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from multimail.config import MailSettings, TransportConfig  # noqa: E402
from multimail.dispatch import MailDispatcher  # noqa: E402
from multimail.observability import get_log_context  # noqa: E402
from multimail.transports import (  # noqa: E402
    SMTPTransportClient,
    TemplateRegistry,
    reset_template_registry,
    set_template_registry,
)
from multimail.workers import BoundedThreadPool  # noqa: E402


class FakeTransportClient:
    """
    In-memory transport client.

    Builds real EmailMessage objects (via SMTPTransportClient) but records
    them instead of talking to a server.
    """

    def __init__(self, config: TransportConfig):
        self._config = config
        self._builder = SMTPTransportClient(config)
        self._lock = threading.Lock()
        self.sent: list = []
        self.sent_log_contexts: list[dict] = []
        self.sent_threads: list[str] = []
        self.gate: threading.Event | None = None
        self.fail_with: Exception | None = None

    @property
    def config(self) -> TransportConfig:
        return self._config

    def build_message(self, **kwargs):
        return self._builder.build_message(**kwargs)

    def send(self, message) -> None:
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            self.sent.append(message)
            self.sent_log_contexts.append(get_log_context())
            self.sent_threads.append(threading.current_thread().name)


@pytest.fixture
def default_config():
    """Default transport config."""
    return TransportConfig(host="smtp.default.test", port=2525, username="noreply@default.test")


@pytest.fixture
def office_config():
    """EmailOffice365 transport config."""
    return TransportConfig(
        host="smtp.office365.test",
        port=587,
        username="office@office365.test",
        properties={"starttls": True},
    )


@pytest.fixture
def marketing_config():
    """EmailMarketing transport config."""
    return TransportConfig(host="smtp.marketing.test", username="news@marketing.test")


@pytest.fixture
def mail_settings(default_config, office_config, marketing_config):
    """Settings with a default and two named templates."""
    return MailSettings(
        mail=default_config,
        email_templates=[
            {"template_name": "EmailOffice365", "mail_properties": office_config},
            {"template_name": "EmailMarketing", "mail_properties": marketing_config},
        ],
        thread={"core_pool_size": 2, "maximum_pool_size": 4, "capacity": 16},
    )


@pytest.fixture
def registry(mail_settings):
    """Sealed registry of fake clients, installed globally."""
    registry = TemplateRegistry.from_settings(mail_settings, client_factory=FakeTransportClient)
    set_template_registry(registry)
    yield registry
    reset_template_registry()


@pytest.fixture
def pool():
    """Small worker pool, shut down after the test."""
    pool = BoundedThreadPool(core_pool_size=2, maximum_pool_size=4, queue_capacity=16)
    yield pool
    pool.shutdown(wait=False, cancel_futures=True)


@pytest.fixture
def dispatcher(registry, pool):
    """Dispatcher over the fake registry."""
    return MailDispatcher(registry, pool)


@pytest.fixture
def sample_message():
    """A valid plain-text message payload."""
    return {
        "to": "alice@example.com",
        "subject": "Quarterly report",
        "text": "Please find the numbers below.",
    }


@pytest.fixture
def fake_client_factory():
    """Client factory producing FakeTransportClient instances."""
    return FakeTransportClient
