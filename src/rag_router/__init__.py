"""RAG router package."""

from .config import RouteConfig, RouterConfig, SamplingConfig, StoreConfig
from .errors import RouterError
from .routing.router import Router

__all__ = ["RouteConfig", "Router", "RouterConfig", "RouterError", "SamplingConfig", "StoreConfig"]
