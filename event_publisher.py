"""
Publishers for the "material migrated" notification.

The engine only calls ``publish(event)`` and never waits on delivery.
"""
import requests

from logger import setup_logger

logger = setup_logger(__name__)

class LoggingEventPublisher:
    """Records events in the migration log only"""

    def publish(self, event):
        logger.info(
            f"Material {event.material_id} migrated to BaseProduct {event.base_product_id} "
            f"/ ProductVariant {event.product_variant_id} by user {event.user_id}"
        )

class WebhookEventPublisher:
    """POSTs each event as JSON to a webhook URL"""

    def __init__(self, webhook_url, timeout=10):
        self.webhook_url = webhook_url
        self.timeout = timeout

    def publish(self, event):
        response = requests.post(self.webhook_url, json=event.to_dict(), timeout=self.timeout)
        response.raise_for_status()
        logger.debug(f"Published migration event for material {event.material_id}")

def create_event_publisher(webhook_url=None):
    """Webhook publisher when a URL is configured, log-only otherwise"""
    if webhook_url:
        return WebhookEventPublisher(webhook_url)
    return LoggingEventPublisher()
