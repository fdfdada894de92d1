"""Named routes: a chat model, an optional embedder, and an optional store."""

from __future__ import annotations

import threading
from datetime import timedelta
from pathlib import Path
from typing import Any

from loguru import logger

from rag_router.config import RouteConfig, validate_config
from rag_router.errors import ConfigurationError, NotFoundError
from rag_router.llm.backend import InferenceBackend, ModelHandle
from rag_router.retrieval.store import KnowledgeStore, store_root
from rag_router.templates import TemplateRenderer
from rag_router.types import Neighbor


class Route:
    """A fully configured model endpoint.

    `lock` serialises chat calls: a model handle keeps one history and is not
    reentrant.
    """

    def __init__(
        self,
        name: str,
        config: RouteConfig,
        chat_model: ModelHandle,
        embed_model: ModelHandle | None = None,
        store: KnowledgeStore | None = None,
    ) -> None:
        self.name = name
        self.config = config
        self.chat_model = chat_model
        self.embed_model = embed_model
        self.store = store
        self.lock = threading.RLock()

    @property
    def doc_prefix(self) -> str:
        return self.config.doc_prefix

    @property
    def query_prefix(self) -> str:
        return self.config.query_prefix

    def chat(self, prompt: str) -> str:
        with self.lock:
            return self.chat_model.chat(prompt)

    def ask(self, prompt: str) -> str:
        with self.lock:
            return self.chat_model.ask(prompt)

    def add_inference_to_prompt(self, text: str) -> None:
        with self.lock:
            self.chat_model.add_inference_to_prompt(text)

    def reset(self, system_prompt: str | None = None) -> None:
        with self.lock:
            self.chat_model.reset_messages(system_prompt)

    def embed(self, texts: list[str]) -> list[list[float]]:
        return self._embedder().embed(texts)

    def add_document(self, doc_id: str, text: str) -> timedelta:
        return self._store().add_document(doc_id, text, self._embedder())

    def add_string(self, record_id: str, text: str) -> None:
        self._store().add_string(record_id, text, self._embedder())

    def delete(self, record_id: str) -> None:
        self._store().delete(record_id)

    def query(
        self,
        text: str,
        *,
        k: int | None = None,
        alpha: float | None = None,
        max_score: float | None = None,
    ) -> list[Neighbor]:
        """Hybrid search: embeds ``query_prefix + text`` and matches `text` as keywords."""

        store = self._store()
        vector = self._embedder().embed([f"{self.query_prefix}{text}"])[0]
        return store.query(
            vector,
            text,
            k=self.config.k if k is None else k,
            alpha=self.config.alpha if alpha is None else alpha,
            max_score=self.config.max_score if max_score is None else max_score,
        )

    def query_texts(self, text: str, **kwargs: Any) -> list[str]:
        return [neighbor.text for neighbor in self.query(text, **kwargs)]

    def query_templated(
        self, text: str, template: str, renderer: TemplateRenderer, **kwargs: Any
    ) -> list[str]:
        return [renderer.render_neighbor(template, n) for n in self.query(text, **kwargs)]

    def save(self) -> None:
        self._store().save()

    def _embedder(self) -> ModelHandle:
        if self.embed_model is None:
            raise ConfigurationError(f"Route {self.name} has no embedding model", route=self.name)
        return self.embed_model

    def _store(self) -> KnowledgeStore:
        if self.store is None:
            raise ConfigurationError(f"Route {self.name} has no knowledge store", route=self.name)
        return self.store


def build_route(
    name: str, config: RouteConfig | dict[str, Any], backend: InferenceBackend
) -> Route:
    """Build a route, loading models before touching the filesystem.

    A failure at any step raises before the route exists, so nothing is
    registered and no store directory is created for a route whose models
    cannot be loaded.
    """

    cfg: RouteConfig = validate_config(RouteConfig, config)
    chat_model = backend.load_model(cfg.chat_model, cfg.system_prompt, cfg.sampling)
    embed_model = (
        backend.load_model(cfg.embed_model, cfg.system_prompt) if cfg.embed_model else None
    )
    store = KnowledgeStore.open(cfg.db_path, cfg.store_config()) if cfg.db_path else None
    return Route(name, cfg, chat_model, embed_model, store)


class RouteRegistry:
    """Owns every route; registration replaces silently (last write wins).

    Each store directory belongs to one owner: a route whose `db_path`
    resolves to a directory used by another route, or reserved with
    `reserve_path` (the router's catalog), is rejected with
    `ConfigurationError` before anything is loaded. Re-registering a name may
    keep its own path.
    """

    def __init__(self, backend: InferenceBackend) -> None:
        self.backend = backend
        self._routes: dict[str, Route] = {}
        self._reserved: set[Path] = set()
        self._lock = threading.Lock()

    def reserve_path(self, path: str | Path) -> None:
        with self._lock:
            self._reserved.add(store_root(path).resolve())

    def register(self, name: str, config: RouteConfig | dict[str, Any]) -> Route:
        cfg: RouteConfig = validate_config(RouteConfig, config)
        with self._lock:
            self._check_store_path(name, cfg)
        route = build_route(name, cfg, self.backend)
        with self._lock:
            self._check_store_path(name, cfg)
            replaced = name in self._routes
            self._routes[name] = route
        logger.info(
            "Registered route {} (chat={}, embed={}, store={}, replaced={})",
            name,
            route.config.chat_model,
            route.config.embed_model,
            route.store.path if route.store else None,
            replaced,
        )
        return route

    def get(self, name: str) -> Route:
        with self._lock:
            route = self._routes.get(name)
        if route is None:
            raise NotFoundError(f"Route not found: {name}", resource_type="route", resource_id=name)
        return route

    def remove(self, name: str) -> None:
        with self._lock:
            if self._routes.pop(name, None) is None:
                raise NotFoundError(
                    f"Route not found: {name}", resource_type="route", resource_id=name
                )
        logger.info("Removed route {}", name)

    def names(self) -> set[str]:
        with self._lock:
            return set(self._routes)

    def _check_store_path(self, name: str, cfg: RouteConfig) -> None:
        if not cfg.db_path:
            return
        root = store_root(cfg.db_path).resolve()
        owners = [
            other
            for other, route in self._routes.items()
            if other != name
            and route.config.db_path
            and store_root(route.config.db_path).resolve() == root
        ]
        if root in self._reserved:
            owners.append("<reserved>")
        if owners:
            raise ConfigurationError(
                f"Store path {root} is already in use",
                route=name,
                owners=sorted(owners),
            )
