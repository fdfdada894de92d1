"""Top-level facade composing routes, sessions, refinement, retrieval, and rules."""

from __future__ import annotations

from typing import Any

from loguru import logger

from rag_router.config import RouteConfig, RouterConfig, StoreConfig, validate_config
from rag_router.errors import ConfigurationError, RouterError
from rag_router.llm.backend import InferenceBackend
from rag_router.retrieval.store import KnowledgeStore
from rag_router.routing.refiner import (
    REFINE_TEMPLATE_NAME,
    REFINER_SYSTEM_PROMPT,
    PromptRefiner,
    RecommendedPrompt,
    select,
)
from rag_router.routing.registry import Route, RouteRegistry
from rag_router.routing.sessions import Session, SessionStore
from rag_router.rules.adapter import RuleEvaluator
from rag_router.rules.engine import Facts, RuleEngine
from rag_router.templates import TemplateRenderer
from rag_router.types import Neighbor, TaggedDocument


class Router:
    """Routes requests to named model configurations.

    A routed chat refines the raw query into variants, selects one by
    `query_preference`, and sends it to the route's chat model under the
    route lock. `rag` first adds rendered retrieval results to the route's
    context as assistant messages.

    Construction loads the prompt and default embedding models, registers the
    refiner template, then opens the catalog store. Any failure raises
    `ConfigurationError` and leaves no router behind.
    """

    def __init__(
        self,
        config: RouterConfig | dict[str, Any],
        backend: InferenceBackend,
        *,
        rule_engine: RuleEngine | None = None,
    ) -> None:
        self.config: RouterConfig = validate_config(RouterConfig, config)
        self.backend = backend
        self.templates = TemplateRenderer()
        self.routes = RouteRegistry(backend)
        self.sessions = SessionStore()
        self.rules = RuleEvaluator(rule_engine)
        self._query_preference = self.config.query_preference

        self.prompt_model = backend.load_model(
            self.config.prompt_model, REFINER_SYSTEM_PROMPT, self.config.refiner_sampling
        )
        self.embed_model = backend.load_model(
            self.config.default_embed_model, self.config.system_prompt
        )
        self.refiner = PromptRefiner(
            self.prompt_model,
            self.templates,
            REFINE_TEMPLATE_NAME,
            sampling=self.config.refiner_sampling,
        )
        try:
            self.catalog = KnowledgeStore.open(self.config.catalog_path, StoreConfig())
        except RouterError as exc:
            raise ConfigurationError(
                f"Failed to open catalog at {self.config.catalog_path}", details=str(exc)
            ) from exc
        self.routes.reserve_path(self.catalog.path)
        logger.info(
            "Router ready (prompt_model={}, embed_model={}, catalog={})",
            self.config.prompt_model,
            self.config.default_embed_model,
            self.catalog.path,
        )

    # Routes

    def register_route(self, name: str, config: RouteConfig | dict[str, Any]) -> Route:
        return self.routes.register(name, config)

    def get_route(self, name: str) -> Route:
        return self.routes.get(name)

    def remove_route(self, name: str) -> None:
        self.routes.remove(name)

    def list_routes(self) -> set[str]:
        return self.routes.names()

    # Sessions

    def open_session(
        self, name: str, system_prompt: str | None = None, max_length: int | None = None
    ) -> Session:
        prompt = self.config.system_prompt if system_prompt is None else system_prompt
        return self.sessions.open(name, prompt, max_length)

    def get_session(self, name: str) -> Session:
        return self.sessions.get(name)

    def remove_session(self, name: str) -> None:
        self.sessions.remove(name)

    def list_sessions(self) -> set[str]:
        return self.sessions.names()

    def append_system(self, session: str, text: str) -> None:
        target = self.sessions.get(session)
        with target.lock:
            target.append_system(text)

    def append_user(self, session: str, text: str) -> None:
        target = self.sessions.get(session)
        with target.lock:
            target.append_user(text)

    def append_assistant(self, session: str, text: str) -> None:
        target = self.sessions.get(session)
        with target.lock:
            target.append_assistant(text)

    def session_chat(self, route: str, session: str, prompt: str) -> str:
        """Chat on `route`'s model using `session` as the conversation."""
        target_route = self.routes.get(route)
        target = self.sessions.get(session)
        with target.lock:
            return target_route.chat_model.chat_in(target, prompt)

    # Refinement and dispatch

    @property
    def query_preference(self) -> str:
        return self._query_preference

    @query_preference.setter
    def query_preference(self, preference: str) -> None:
        self._query_preference = preference

    def refine_prompt(self, prompt: str) -> RecommendedPrompt:
        return self.refiner.refine(prompt)

    def recommended_prompt(self, prompt: str) -> str:
        return select(self.refine_prompt(prompt), self._query_preference)

    def chat(self, route: str, query: str) -> str:
        target = self.routes.get(route)
        actual = self.recommended_prompt(query)
        with target.lock:
            return target.chat(actual)

    # Retrieval

    def query_vecstore(self, route: str, query: str) -> list[str]:
        return self.routes.get(route).query_texts(query)

    def query_vecstore_templated(self, route: str, template: str, query: str) -> list[str]:
        return self.routes.get(route).query_templated(query, template, self.templates)

    def query(self, route: str, query: str, template: str) -> list[str]:
        """Templated retrieval using the refined form of `query`."""
        target = self.routes.get(route)
        actual = self.recommended_prompt(query)
        return target.query_templated(actual, template, self.templates)

    def rag(self, route: str, template: str, query: str) -> str:
        """Retrieve with the raw query, add rendered hits as context, then chat."""

        target = self.routes.get(route)
        context = target.query_templated(query, template, self.templates)
        with target.lock:
            for text in context:
                target.add_inference_to_prompt(text)
            logger.debug("Added {} retrieval result(s) to route {}", len(context), route)
            return self.chat(route, query)

    # Catalog

    def add_url_to_catalog(self, doc: str, url: str) -> str:
        return self.add_object_to_catalog(TaggedDocument.from_text(doc, url=url, type="url"))

    def add_endpoint_to_catalog(self, endpoint_type: str, doc: str, url: str) -> str:
        return self.add_object_to_catalog(
            TaggedDocument.from_text(doc, url=url, endpoint_type=endpoint_type, type="endpoint")
        )

    def add_route_to_catalog(self, doc: str, route: str) -> str:
        return self.add_object_to_catalog(TaggedDocument.from_text(doc, route=route, type="route"))

    def add_object_to_catalog(self, obj: TaggedDocument) -> str:
        self.catalog.add_object(obj.id, obj, self.embed_model)
        return obj.id

    def query_catalog(
        self,
        query: str,
        *,
        k: int | None = None,
        alpha: float | None = None,
        max_score: float | None = None,
    ) -> list[Neighbor]:
        vector = self.embed(query)
        return self.catalog.query(
            vector,
            query,
            k=self.config.catalog_k if k is None else k,
            alpha=self.config.catalog_alpha if alpha is None else alpha,
            max_score=self.config.catalog_max_score if max_score is None else max_score,
        )

    def save_catalog(self) -> None:
        self.catalog.save()

    # Templates

    def register_template(self, name: str, text: str) -> None:
        self.templates.register(name, text)

    def render(self, name: str, context: dict[str, Any]) -> str:
        return self.templates.render(name, context)

    # Rules

    def define_rules(self, name: str, source: str) -> None:
        self.rules.define_rules(name, source)

    def facts(self, name: str) -> Facts:
        return self.rules.facts(name)

    def set_fact(self, name: str, key: str, value: Any) -> None:
        self.rules.set_fact(name, key, value)

    def evaluate(self, rule_set: str, facts: str) -> None:
        self.rules.evaluate(rule_set, facts)

    def embed(self, text: str) -> list[float]:
        """Embed ``embedding_query_prefix + text`` with the default embedding model."""
        return self.embed_model.embed([f"{self.config.embedding_query_prefix}{text}"])[0]
