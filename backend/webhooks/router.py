# webhooks/router.py
# =============================================================================
# WEBHOOK ROUTER
# =============================================================================

from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

WebhookHandler = Callable[[Any, str], Awaitable[None]]


class WebhookRouter:
    """
    Maps an exact event type string to one handler.
    Separates routing logic from projection logic.
    """

    def __init__(self):
        self._handlers: Dict[str, WebhookHandler] = {}
        self._logger = structlog.get_logger().bind(component="webhook_router")

    def register(self, event_type: str):
        """Decorator to register handler for event type"""
        def decorator(handler: WebhookHandler):
            self._handlers[event_type] = handler
            self._logger.debug("handler_registered", event_type=event_type)
            return handler
        return decorator

    async def route(self, event_type: str, event: Any, correlation_id: str) -> Optional[str]:
        """
        Run the handler registered for event_type.

        Returns the handler's name, or None when the type is unknown.
        Handler exceptions propagate to the caller.
        """
        handler = self._handlers.get(event_type)
        if not handler:
            self._logger.warning("webhook_unknown_event_type",
                                 event_type=event_type,
                                 correlation_id=correlation_id)
            return None

        await handler(event, correlation_id)
        return handler.__name__

    @property
    def supported_events(self) -> List[str]:
        return list(self._handlers.keys())
