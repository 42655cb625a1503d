# api/__init__.py
from api.routes import router

__all__ = [
    "router",
]
