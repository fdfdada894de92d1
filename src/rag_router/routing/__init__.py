"""Routes, sessions, prompt refinement, and the Router facade."""

from .refiner import (
    DEFAULT_REFINE_TEMPLATE,
    PREFERENCES,
    PromptRefiner,
    RecommendedPrompt,
    parse_recommended_prompt,
    select,
)
from .registry import Route, RouteRegistry, build_route
from .router import Router
from .sessions import Session, SessionStore

__all__ = [
    "DEFAULT_REFINE_TEMPLATE",
    "PREFERENCES",
    "PromptRefiner",
    "RecommendedPrompt",
    "Route",
    "RouteRegistry",
    "Router",
    "Session",
    "SessionStore",
    "build_route",
    "parse_recommended_prompt",
    "select",
]
