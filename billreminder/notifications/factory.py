"""Factory for creating notification providers based on configuration.

Implements Factory Pattern for provider selection over a fixed name-to-class registry.

Based on:
- Factory Pattern: https://refactoring.guru/design-patterns/factory-method/python
- Registry Pattern: Python Cookbook 3rd Edition, Recipe 9.22
"""

import logging

from billreminder.notifications.base import NotificationProvider
from billreminder.notifications.log_provider import LogNotificationProvider
from billreminder.notifications.webhook_provider import WebhookNotificationProvider
from billreminder.shared.config import Settings

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Registry of available notification providers.

    Maps the names accepted by Settings.notification_provider to their classes.
    """

    _providers: dict[str, type[NotificationProvider]] = {
        "webhook": WebhookNotificationProvider,
        "log": LogNotificationProvider,
    }

    @classmethod
    def get_provider_class(cls, name: str) -> type[NotificationProvider]:
        """Get provider class by name.

        Raises:
            ValueError: If provider not found in registry
        """
        if name not in cls._providers:
            available = ", ".join(cls._providers.keys())
            raise ValueError(
                f"Unknown notification provider: '{name}'. Available providers: {available}"
            )
        return cls._providers[name]


def create_notification_provider(settings: Settings) -> NotificationProvider:
    """Create the notification provider named by settings.notification_provider.

    Logs a warning if the provider is not available (e.g., missing webhook URL).

    Args:
        settings: Application settings

    Returns:
        Configured notification provider instance

    Raises:
        ValueError: If configured provider is unknown
    """
    provider_name = settings.notification_provider
    provider_class = ProviderRegistry.get_provider_class(provider_name)
    provider = provider_class(settings)

    if not provider.is_available():
        logger.warning(
            f"Notification provider '{provider_name}' is not fully available. "
            f"Check configuration (e.g., APP_WEBHOOK_URL)."
        )

    logger.info(f"Created notification provider: {provider_name}")
    return provider
