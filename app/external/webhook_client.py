import ipaddress
import logging
import re
from typing import Any, Dict, Optional
from urllib.parse import urlsplit
import httpx
from pydantic import BaseModel
from app.config import Settings
from app.core.logging_utils import sanitize_log_message
from app.core.time_utils import to_iso

logger = logging.getLogger(__name__)

# Hostname patterns for private, loopback and link-local ranges
BLOCKED_HOST_PATTERNS = [
    re.compile(r"^10\."),
    re.compile(r"^192\.168\."),
    re.compile(r"^172\.(1[6-9]|2[0-9]|3[01])\."),
    re.compile(r"^127\."),
    re.compile(r"^169\.254\."),
    re.compile(r"^0\."),
    re.compile(r"^::1$"),
    re.compile(r"^f[cd][0-9a-f]{2}:"),
    re.compile(r"^fe[89ab][0-9a-f]:"),
]


class WebhookValidationError(ValueError):
    """Raised when a webhook URL may not be called."""


class WebhookTestResult(BaseModel):
    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


def _is_blocked_ip(hostname: str) -> bool:
    try:
        ip = ipaddress.ip_address(int(hostname) if hostname.isdigit() else hostname)
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_unspecified
        or ip.is_reserved
        or ip.is_multicast
    )


def validate_webhook_url(url: str, require_https: bool = False) -> str:
    """
    Check that a webhook URL points at a public HTTP(S) endpoint.

    Hostnames are matched textually and IP literals are classified with
    `ipaddress`. Names are not resolved, so a public hostname whose DNS
    record points at a private address is not caught here.

    Args:
        url: Candidate webhook URL
        require_https: Reject plain http (production)

    Returns:
        The URL, unchanged

    Raises:
        WebhookValidationError: With a caller-safe reason
    """
    if not url or not isinstance(url, str):
        raise WebhookValidationError("Invalid webhook URL: URL is required")

    try:
        parsed = urlsplit(url.strip())
        hostname = (parsed.hostname or "").lower().rstrip(".")
    except ValueError:
        raise WebhookValidationError("Invalid webhook URL: malformed URL")

    if parsed.scheme not in ("http", "https"):
        raise WebhookValidationError("Invalid webhook URL: Only HTTP and HTTPS protocols are allowed")
    if not hostname:
        raise WebhookValidationError("Invalid webhook URL: missing host")

    if (
        hostname == "localhost"
        or hostname.endswith(".localhost")
        or any(pattern.match(hostname) for pattern in BLOCKED_HOST_PATTERNS)
        or _is_blocked_ip(hostname)
    ):
        raise WebhookValidationError("Invalid webhook URL: Private IP addresses and localhost not allowed")

    if require_https and parsed.scheme != "https":
        raise WebhookValidationError("Invalid webhook URL: HTTPS required in production")

    return url


def build_webhook_client(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> httpx.AsyncClient:
    """
    Shared client for webhook calls.

    Every outgoing request, redirects included, is validated again before it
    leaves, so a public endpoint cannot redirect the call to a private one.
    """
    require_https = settings.is_production

    async def check_request_url(request: httpx.Request) -> None:
        validate_webhook_url(str(request.url), require_https=require_https)

    return httpx.AsyncClient(
        timeout=settings.WEBHOOK_TIMEOUT,
        follow_redirects=True,
        max_redirects=settings.WEBHOOK_MAX_REDIRECTS,
        event_hooks={"request": [check_request_url]},
        transport=transport,
    )


class WebhookDispatcher:
    """Delivers submission notifications to configured webhook URLs."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        require_https: bool = False,
        user_agent: str = "FormDashboard/1.0",
        source: str = "FormDashboard"
    ):
        self.client = client
        self.require_https = require_https
        self.user_agent = user_agent
        self.source = source

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "WebhookDispatcher":
        return cls(
            client=client or build_webhook_client(settings),
            require_https=settings.is_production,
            user_agent=settings.WEBHOOK_USER_AGENT,
            source=settings.WEBHOOK_SOURCE,
        )

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }

    async def _post(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        validate_webhook_url(url, require_https=self.require_https)
        response = await self.client.post(url, json=payload, headers=self._get_headers())
        response.raise_for_status()
        return response

    async def send(
        self,
        url: str,
        form_id: str,
        submission_id: str,
        submitted_at: str,
        data: Dict[str, Any]
    ) -> bool:
        """
        POST a submission notification. Single attempt.

        Failures are logged and never raised.

        Returns:
            True if the endpoint answered with a 2xx status
        """
        payload = {
            "formId": form_id,
            "submissionId": submission_id,
            "submittedAt": submitted_at,
            "data": data,
            "source": self.source,
        }
        try:
            response = await self._post(url, payload)
        except WebhookValidationError as e:
            logger.warning(sanitize_log_message(
                "Webhook URL rejected",
                FormID=form_id,
                SubmissionID=submission_id,
                Reason=str(e)
            ))
            return False
        except httpx.HTTPError as e:
            logger.error(sanitize_log_message(
                "Webhook delivery failed",
                FormID=form_id,
                SubmissionID=submission_id,
                Error=f"{type(e).__name__}: {e}"
            ))
            return False

        logger.info(sanitize_log_message(
            "Webhook delivered",
            FormID=form_id,
            SubmissionID=submission_id,
            StatusCode=response.status_code
        ))
        return True

    async def test(self, url: str, test_data: Optional[Dict[str, Any]] = None) -> WebhookTestResult:
        """Send a test payload and report the outcome to the caller."""
        payload = {
            "test": True,
            "timestamp": to_iso(),
            "data": test_data or {"message": f"Test webhook from {self.source}"},
            "source": f"{self.source}-Test",
        }
        try:
            response = await self._post(url, payload)
        except WebhookValidationError as e:
            return WebhookTestResult(success=False, error=str(e))
        except httpx.HTTPStatusError as e:
            return WebhookTestResult(
                success=False,
                status_code=e.response.status_code,
                error=f"Webhook responded with status {e.response.status_code}"
            )
        except httpx.TooManyRedirects:
            return WebhookTestResult(success=False, error="Too many redirects")
        except httpx.TimeoutException:
            return WebhookTestResult(success=False, error="Webhook request timed out")
        except httpx.HTTPError as e:
            return WebhookTestResult(success=False, error=f"Webhook request failed: {type(e).__name__}")

        logger.info(sanitize_log_message("Webhook test succeeded", StatusCode=response.status_code))
        return WebhookTestResult(success=True, status_code=response.status_code)
