"""Abstract base class for notification providers.

Enables switching between delivery channels (HTTP webhook, dry-run logging)
while keeping one interface for the send orchestrator.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python
"""

from abc import ABC, abstractmethod

from billreminder.notifications.schema import DeliveryResult, NotificationPayload
from billreminder.shared.config import Settings


class NotificationProvider(ABC):
    """Abstract base class for reminder delivery.

    Providers are fire-once-per-attempt from the caller's point of view:
    retries and timeouts are the provider's own concern, and ``deliver``
    reports the final outcome instead of raising.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize provider with settings.

        Args:
            settings: Application settings
        """
        self.settings = settings

    @abstractmethod
    async def deliver(self, payload: NotificationPayload) -> DeliveryResult:
        """Deliver one reminder payload.

        Args:
            payload: Reminder to deliver

        Returns:
            DeliveryResult with success flag and response data or error
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this provider is configured well enough to deliver.

        Returns:
            True if provider can be used, False otherwise
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get provider name for logging/metrics.

        Returns:
            Provider identifier (e.g., 'webhook', 'log')
        """
        pass

    async def aclose(self) -> None:
        """Release provider resources. Default: nothing to release."""
        return None
