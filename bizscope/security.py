"""Security checks for inbound webhook requests."""

import hashlib
import hmac
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from .config import WebhookSecurityConfig

UNKNOWN_CLIENT_IP = "unknown"


@dataclass(frozen=True)
class SecurityCheckResult:
    valid: bool
    error: Optional[str] = None


def resolve_client_ip(headers: Mapping[str, str]) -> str:
    """Resolve the client IP from proxy headers.

    Uses the first hop of X-Forwarded-For, then X-Real-IP.
    """
    lowered = {k.lower(): v for k, v in headers.items()}

    forwarded = lowered.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop

    real_ip = lowered.get("x-real-ip", "").strip()
    return real_ip or UNKNOWN_CLIENT_IP


def request_signature(body: bytes | str) -> str:
    """Short SHA-256 digest of a request body for log correlation."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return hashlib.sha256(body).hexdigest()[:16]


class WebhookSecurityGate:
    """Validates transport and authentication preconditions of a webhook call.

    Checks run in a fixed order and the first failure wins. Every check past
    the method and content type is opt-in through WebhookSecurityConfig.
    """

    def __init__(
        self,
        settings_provider: Callable[[], WebhookSecurityConfig] = WebhookSecurityConfig.from_env,
    ):
        """Initialize the gate.

        Args:
            settings_provider: Returns the current security settings. Called
                once per verification so configuration changes apply live.
        """
        self.settings_provider = settings_provider

    def settings(self) -> WebhookSecurityConfig:
        return self.settings_provider()

    def verify(
        self,
        method: str,
        headers: Mapping[str, str],
        source: str = "n8n",
    ) -> SecurityCheckResult:
        """Run all checks against a request's method and headers.

        Args:
            method: HTTP method
            headers: Request headers (any case)
            source: Webhook source name, used for the X-<Source>-Source header

        Returns:
            Result with the reason of the first failed check, if any
        """
        settings = self.settings()
        lowered = {k.lower(): v for k, v in headers.items()}

        if method.upper() != "POST":
            return SecurityCheckResult(False, "only POST requests are supported")

        if "application/json" not in lowered.get("content-type", ""):
            return SecurityCheckResult(False, "Content-Type must be application/json")

        if settings.require_user_agent and not lowered.get("user-agent"):
            return SecurityCheckResult(False, "missing User-Agent header")

        if settings.secret is not None:
            provided = lowered.get("x-webhook-secret", "")
            expected = settings.secret.get_secret_value()
            if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
                return SecurityCheckResult(False, "invalid webhook secret")

        source_header = f"x-{source.lower()}-source"
        if settings.require_source and not lowered.get(source_header):
            return SecurityCheckResult(False, f"missing {source} source header")

        if settings.allowed_ips:
            client_ip = resolve_client_ip(lowered)
            if client_ip not in settings.allowed_ips:
                return SecurityCheckResult(False, "IP address is not in the allowlist")

        return SecurityCheckResult(True)
