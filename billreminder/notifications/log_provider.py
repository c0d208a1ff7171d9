"""Dry-run notification provider.

Logs the payload instead of delivering it and always reports success. Useful
for staging environments where reminders must not reach real companies.
"""

import json
import logging

from billreminder.notifications.base import NotificationProvider
from billreminder.notifications.schema import DeliveryResult, NotificationPayload

logger = logging.getLogger(__name__)


class LogNotificationProvider(NotificationProvider):
    @property
    def provider_name(self) -> str:
        return "log"

    def is_available(self) -> bool:
        return True

    async def deliver(self, payload: NotificationPayload) -> DeliveryResult:
        body = payload.to_json()
        logger.info(f"[dry-run] {payload.type} reminder for {payload.company}: {json.dumps(body)}")
        return DeliveryResult(success=True, data=body, provider=self.provider_name)
