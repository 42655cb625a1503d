# webhooks/__init__.py
from webhooks.errors import (
    WebhookRejectedError,
    MissingWebhookHeadersError,
    InvalidWebhookSignatureError,
    MalformedWebhookPayloadError,
)
from webhooks.processor import WebhookProcessor, WebhookResult
from webhooks.projector import StatusProjector
from webhooks.router import WebhookRouter
from webhooks.signature import sign, verify

__all__ = [
    "WebhookRejectedError",
    "MissingWebhookHeadersError",
    "InvalidWebhookSignatureError",
    "MalformedWebhookPayloadError",
    "WebhookProcessor",
    "WebhookResult",
    "StatusProjector",
    "WebhookRouter",
    "sign",
    "verify",
]
