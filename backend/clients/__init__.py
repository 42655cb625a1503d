# clients/__init__.py
from clients.cashfree_client import (
    CashfreeClient,
    CashfreeError,
    CashfreeAPIError,
    CashfreeTransportError,
)

__all__ = [
    "CashfreeClient",
    "CashfreeError",
    "CashfreeAPIError",
    "CashfreeTransportError",
]
