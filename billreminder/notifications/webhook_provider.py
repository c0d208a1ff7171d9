"""Webhook notification provider.

POSTs the reminder payload as JSON to an automation webhook, which renders and
mails the reminder. Transport errors and 5xx responses are retried with
exponential backoff; 4xx responses fail immediately.
"""

import logging
import time

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from billreminder.notifications.base import NotificationProvider
from billreminder.notifications.schema import DeliveryResult, NotificationPayload
from billreminder.shared.config import Settings

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


class WebhookNotificationProvider(NotificationProvider):
    """Delivers reminders by HTTP POST to ``settings.webhook_url``."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        """Initialize webhook provider.

        Args:
            settings: Application settings
            client: Optional preconfigured HTTP client (tests inject a mock transport)
        """
        super().__init__(settings)
        self._url = settings.webhook_url
        self._client = client or httpx.AsyncClient(timeout=settings.webhook_timeout_seconds)

    @property
    def provider_name(self) -> str:
        return "webhook"

    def is_available(self) -> bool:
        """Webhook URL must be configured."""
        return bool(self._url)

    async def deliver(self, payload: NotificationPayload) -> DeliveryResult:
        """POST the payload, retrying transient failures.

        Args:
            payload: Reminder to deliver

        Returns:
            DeliveryResult; success only on a 2xx response
        """
        if not self.is_available():
            return DeliveryResult(
                success=False,
                error="Webhook URL not configured. Set APP_WEBHOOK_URL environment variable.",
                provider=self.provider_name,
            )

        logger.info(
            f"Sending {payload.type} reminder for {payload.company} "
            f"({payload.invoice_count} invoice(s)) to webhook"
        )
        start = time.time()

        try:
            response = await self._post_with_retry(payload)
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Webhook rejected reminder for {payload.company}: "
                f"{e.response.status_code} {e.response.text}"
            )
            return DeliveryResult(
                success=False,
                error=f"Webhook returned {e.response.status_code}",
                provider=self.provider_name,
            )
        except httpx.HTTPError as e:
            logger.error(f"Webhook delivery for {payload.company} failed: {e}")
            return DeliveryResult(
                success=False, error=f"Delivery failed: {e}", provider=self.provider_name
            )

        logger.info(
            f"Webhook accepted reminder for {payload.company} in {time.time() - start:.2f}s"
        )
        return DeliveryResult(
            success=True, data=self._response_data(response), provider=self.provider_name
        )

    async def _post_with_retry(self, payload: NotificationPayload) -> httpx.Response:
        """POST with retry logic for transient errors.

        Raises:
            httpx.HTTPError: After all retry attempts exhausted, or on a 4xx
        """
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self.settings.webhook_max_attempts),
            wait=wait_exponential(multiplier=self.settings.webhook_retry_wait_seconds, max=30),
            reraise=True,
        ):
            with attempt:
                response = await self._client.post(
                    self._url,
                    json=payload.to_json(),
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
        return response

    @staticmethod
    def _response_data(response: httpx.Response) -> object:
        try:
            return response.json()
        except ValueError:
            return response.text

    async def aclose(self) -> None:
        await self._client.aclose()
