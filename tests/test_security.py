"""Tests for the webhook security gate."""

from pydantic import SecretStr

from bizscope.config import WebhookSecurityConfig
from bizscope.security import WebhookSecurityGate, request_signature, resolve_client_ip

JSON_HEADERS = {"Content-Type": "application/json"}


def gate_with(**settings) -> WebhookSecurityGate:
    config = WebhookSecurityConfig(**settings)
    return WebhookSecurityGate(lambda: config)


class TestBaseChecks:
    """Method and content type are always enforced."""

    def setup_method(self):
        """Set up test fixtures."""
        self.gate = gate_with()

    def test_open_gate_accepts_any_json_post(self):
        """With nothing configured only method and content type matter."""
        assert self.gate.verify("POST", JSON_HEADERS).valid is True
        assert self.gate.verify("post", {"content-type": "application/json; charset=utf-8"}).valid

    def test_rejects_non_post(self):
        result = self.gate.verify("GET", JSON_HEADERS)
        assert result.valid is False
        assert "POST" in result.error

    def test_rejects_wrong_content_type(self):
        result = self.gate.verify("POST", {"Content-Type": "text/plain"})
        assert result.valid is False
        assert "application/json" in result.error

    def test_rejects_missing_content_type(self):
        assert self.gate.verify("POST", {}).valid is False

    def test_method_checked_before_content_type(self):
        result = self.gate.verify("PUT", {"Content-Type": "text/plain"})
        assert "POST" in result.error


class TestOptInChecks:
    """Each configured setting adds one check."""

    def test_secret_required_when_configured(self):
        gate = gate_with(secret=SecretStr("s3cret"))

        assert gate.verify("POST", JSON_HEADERS).valid is False
        assert gate.verify("POST", {**JSON_HEADERS, "X-Webhook-Secret": "wrong"}).valid is False
        assert gate.verify("POST", {**JSON_HEADERS, "X-Webhook-Secret": "s3cret"}).valid is True

    def test_user_agent_required(self):
        gate = gate_with(require_user_agent=True)

        assert gate.verify("POST", JSON_HEADERS).error == "missing User-Agent header"
        assert gate.verify("POST", {**JSON_HEADERS, "User-Agent": "n8n"}).valid is True

    def test_source_header_required(self):
        gate = gate_with(require_source=True)

        assert gate.verify("POST", JSON_HEADERS, source="n8n").valid is False
        assert gate.verify("POST", {**JSON_HEADERS, "X-N8n-Source": "wf-1"}, source="n8n").valid
        assert gate.verify("POST", {**JSON_HEADERS, "X-Zapier-Source": "1"}, source="zapier").valid

    def test_ip_allowlist(self):
        gate = gate_with(allowed_ips=["10.0.0.1", "10.0.0.2"])

        assert gate.verify("POST", {**JSON_HEADERS, "X-Forwarded-For": "10.0.0.2"}).valid is True
        assert gate.verify("POST", {**JSON_HEADERS, "X-Real-IP": "10.0.0.1"}).valid is True
        assert gate.verify("POST", {**JSON_HEADERS, "X-Forwarded-For": "8.8.8.8"}).valid is False
        assert gate.verify("POST", JSON_HEADERS).valid is False

    def test_check_order(self):
        """User agent is checked before the secret, the secret before the source."""
        gate = gate_with(
            secret=SecretStr("s3cret"),
            require_user_agent=True,
            require_source=True,
        )

        assert "User-Agent" in gate.verify("POST", JSON_HEADERS).error
        assert "secret" in gate.verify("POST", {**JSON_HEADERS, "User-Agent": "x"}).error
        result = gate.verify(
            "POST", {**JSON_HEADERS, "User-Agent": "x", "X-Webhook-Secret": "s3cret"}
        )
        assert "source" in result.error

    def test_settings_read_on_every_call(self):
        """Changing the provider's settings takes effect immediately."""
        current = {"config": WebhookSecurityConfig()}
        gate = WebhookSecurityGate(lambda: current["config"])

        assert gate.verify("POST", JSON_HEADERS).valid is True
        current["config"] = WebhookSecurityConfig(secret=SecretStr("new"))
        assert gate.verify("POST", JSON_HEADERS).valid is False


class TestHelpers:
    def test_resolve_client_ip_prefers_first_forwarded_hop(self):
        headers = {"X-Forwarded-For": "1.1.1.1, 10.0.0.1", "X-Real-IP": "2.2.2.2"}
        assert resolve_client_ip(headers) == "1.1.1.1"

    def test_resolve_client_ip_falls_back(self):
        assert resolve_client_ip({"x-real-ip": "2.2.2.2"}) == "2.2.2.2"
        assert resolve_client_ip({}) == "unknown"

    def test_request_signature(self):
        signature = request_signature('{"a": 1}')
        assert len(signature) == 16
        assert signature == request_signature(b'{"a": 1}')
        assert signature != request_signature('{"a": 2}')
