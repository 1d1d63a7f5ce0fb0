"""HTTP quota warning sender, posting to the transactional email service."""

from typing import Optional
import httpx

from common.core.otel_axiom_exporter import get_logger, trace_span
from packages.quota.models.domain.enums import PlanTier
from packages.quota.models.domain.quota import NotificationResult
from .interface import QuotaWarningSenderInterface

logger = get_logger(__name__)


class HttpQuotaWarningSender(QuotaWarningSenderInterface):
    """Posts quota warnings as JSON to the email-send endpoint."""

    def __init__(
        self,
        endpoint: str,
        api_token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the sender.

        Args:
            endpoint: URL of the email-send endpoint
            api_token: Bearer token sent with every request
            timeout: Request timeout in seconds
            client: Pre-built client (tests inject one with a mock transport)
        """
        if not endpoint:
            raise ValueError(
                "NOTIFICATION_ENDPOINT is required for the http notification provider"
            )
        self.endpoint = endpoint
        self.api_token = api_token
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    @trace_span
    async def send_quota_warning(
        self,
        email: str,
        name: Optional[str],
        current_usage: int,
        daily_limit: int,
        plan: PlanTier,
        threshold_percent: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> NotificationResult:
        payload = {
            "type": "quota_warning",
            "user_id": user_id,
            "email": email,
            "full_name": name,
            "current_usage": current_usage,
            "daily_limit": daily_limit,
            "plan": plan.value,
            "threshold_percent": threshold_percent,
        }
        try:
            response = await self._client.post(
                self.endpoint,
                headers=self._headers(),
                json=payload,
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.error(f"Quota warning request failed: {e}", extra={"user_id": user_id})
            return NotificationResult(success=False, error=str(e))

        if not response.is_success:
            error = f"Email service responded {response.status_code}"
            logger.error(error, extra={"user_id": user_id, "status_code": response.status_code})
            return NotificationResult(success=False, error=error)

        return NotificationResult(success=True)

    async def close(self) -> None:
        await self._client.aclose()
