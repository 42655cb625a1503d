# webhooks/errors.py
"""Request-fatal webhook errors. Each carries the HTTP status it maps to."""


class WebhookRejectedError(Exception):
    status_code = 400
    message = "Invalid webhook"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_response(self) -> dict:
        return {"error": self.message}


class MissingWebhookHeadersError(WebhookRejectedError):
    status_code = 400
    message = "Missing webhook headers"


class InvalidWebhookSignatureError(WebhookRejectedError):
    status_code = 401
    message = "Invalid signature"


class MalformedWebhookPayloadError(WebhookRejectedError):
    status_code = 400
    message = "Invalid webhook data"
