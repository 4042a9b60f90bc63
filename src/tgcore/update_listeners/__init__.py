from .base import ListenerEvent, UpdateListener
from .polling import Polling, polling_default
from .webhook import Webhook, WebhookOptions, WebhookReceiver, webhook_app

__all__ = [
    "ListenerEvent",
    "Polling",
    "UpdateListener",
    "Webhook",
    "WebhookOptions",
    "WebhookReceiver",
    "polling_default",
    "webhook_app",
]
