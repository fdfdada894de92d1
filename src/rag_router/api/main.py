"""FastAPI entrypoint exposing routes, sessions, retrieval, and rules.

Run with ``uvicorn --factory rag_router.api.main:create_default_app``.
"""

from __future__ import annotations

import os
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from rag_router.config import RouteConfig, RouterConfig
from rag_router.errors import (
    CapacityError,
    CollaboratorError,
    ConfigurationError,
    NotFoundError,
    RouterError,
    SchemaError,
    StoreError,
)
from rag_router.llm import InferenceBackend, openai_loader
from rag_router.obs import setup_logging
from rag_router.routing.router import Router
from rag_router.types import ROLES

_STATUS_CODES: tuple[tuple[type[RouterError], int], ...] = (
    (NotFoundError, 404),
    (ConfigurationError, 400),
    (CapacityError, 409),
    (SchemaError, 502),
    (CollaboratorError, 502),
    (StoreError, 500),
)


def status_for(exc: RouterError) -> int:
    for error_type, status in _STATUS_CODES:
        if isinstance(exc, error_type):
            return status
    return 500


class ChatRequest(BaseModel):
    query: str = Field(min_length=1)


class RagRequest(BaseModel):
    query: str = Field(min_length=1)
    template: str = Field(min_length=1)


class DocumentRequest(BaseModel):
    doc_id: str = Field(min_length=1)
    text: str
    save: bool = False


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    k: int | None = Field(default=None, ge=0, le=100)
    alpha: float | None = Field(default=None, ge=0.0, le=1.0)
    max_score: float | None = Field(default=None, ge=0.0)
    template: str | None = None


class RefineRequest(BaseModel):
    prompt: str = Field(min_length=1)


class SessionRequest(BaseModel):
    system_prompt: str | None = None
    max_length: int | None = Field(default=None, ge=0)


class MessageRequest(BaseModel):
    role: str
    text: str


class RulesRequest(BaseModel):
    source: str


class FactRequest(BaseModel):
    value: Any


class EvaluateRequest(BaseModel):
    rule_set: str
    facts: str


def create_app(router: Router) -> FastAPI:
    app = FastAPI(title="RAG Router", version="0.1.0")
    app.state.router = router

    @app.exception_handler(RouterError)
    async def _router_error(request: Request, exc: RouterError) -> JSONResponse:
        return JSONResponse(status_code=status_for(exc), content=exc.to_dict())

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "routes": len(router.list_routes()),
            "sessions": len(router.list_sessions()),
            "catalog_records": len(router.catalog),
            "query_preference": router.query_preference,
        }

    @app.get("/routes")
    def list_routes() -> dict[str, Any]:
        return {"items": sorted(router.list_routes())}

    @app.put("/routes/{name}")
    def register_route(name: str, config: RouteConfig) -> dict[str, Any]:
        route = router.register_route(name, config)
        return {
            "name": name,
            "chat_model": route.config.chat_model,
            "embed_model": route.config.embed_model,
            "has_store": route.store is not None,
        }

    @app.delete("/routes/{name}")
    def remove_route(name: str) -> dict[str, Any]:
        router.remove_route(name)
        return {"removed": name}

    @app.post("/routes/{name}/chat")
    def chat(name: str, request: ChatRequest) -> dict[str, Any]:
        return {"reply": router.chat(name, request.query)}

    @app.post("/routes/{name}/rag")
    def rag(name: str, request: RagRequest) -> dict[str, Any]:
        return {"reply": router.rag(name, request.template, request.query)}

    @app.post("/routes/{name}/documents")
    def add_document(name: str, request: DocumentRequest) -> dict[str, Any]:
        route = router.get_route(name)
        elapsed = route.add_document(request.doc_id, request.text)
        if request.save:
            route.save()
        return {
            "doc_id": request.doc_id,
            "records": len(route.store) if route.store is not None else 0,
            "elapsed_ms": elapsed.total_seconds() * 1000.0,
        }

    @app.post("/routes/{name}/search")
    def search(name: str, request: SearchRequest) -> dict[str, Any]:
        route = router.get_route(name)
        neighbors = route.query(
            request.query, k=request.k, alpha=request.alpha, max_score=request.max_score
        )
        items: list[dict[str, Any]] = [
            {"id": n.id, "score": n.score, "text": n.text, "metadata": n.metadata}
            for n in neighbors
        ]
        if request.template:
            for item, neighbor in zip(items, neighbors, strict=True):
                item["rendered"] = router.templates.render_neighbor(request.template, neighbor)
        return {"items": items}

    @app.post("/refine")
    def refine(request: RefineRequest) -> dict[str, Any]:
        recommended = router.refine_prompt(request.prompt)
        return {
            "recommended": recommended.model_dump(),
            "selected": recommended.recommended_prompt(router.query_preference),
        }

    @app.put("/sessions/{name}")
    def open_session(name: str, request: SessionRequest) -> dict[str, Any]:
        session = router.open_session(name, request.system_prompt, request.max_length)
        return {"name": name, "messages": len(session), "remaining": session.remaining()}

    @app.post("/sessions/{name}/messages")
    def append_message(name: str, request: MessageRequest) -> dict[str, Any]:
        if request.role not in ROLES:
            raise ConfigurationError(f"Unknown role: {request.role}", details=f"expected {ROLES}")
        getattr(router, f"append_{request.role}")(name, request.text)
        session = router.get_session(name)
        return {"name": name, "messages": len(session), "remaining": session.remaining()}

    @app.get("/sessions/{name}")
    def get_session(name: str) -> dict[str, Any]:
        session = router.get_session(name)
        return {
            "name": name,
            "messages": [{"role": m.role, "text": m.text} for m in session.messages],
            "remaining": session.remaining(),
        }

    @app.put("/rules/{name}")
    def define_rules(name: str, request: RulesRequest) -> dict[str, Any]:
        router.define_rules(name, request.source)
        return {"name": name, "rules": len(router.rules.rules(name))}

    @app.put("/facts/{name}/{key}")
    def set_fact(name: str, key: str, request: FactRequest) -> dict[str, Any]:
        router.set_fact(name, key, request.value)
        return {"name": name, "facts": dict(router.facts(name))}

    @app.get("/facts/{name}")
    def get_facts(name: str) -> dict[str, Any]:
        return {"name": name, "facts": dict(router.rules.get_facts(name))}

    @app.post("/evaluate")
    def evaluate(request: EvaluateRequest) -> dict[str, Any]:
        router.evaluate(request.rule_set, request.facts)
        return {"facts": dict(router.rules.get_facts(request.facts))}

    return app


def create_default_app() -> FastAPI:
    """Build the app from environment variables with OpenAI-backed models."""

    setup_logging(os.getenv("ROUTER_LOG_LEVEL", "INFO"))
    prompt_model = os.getenv("ROUTER_PROMPT_MODEL")
    embed_model = os.getenv("ROUTER_EMBED_MODEL")
    if not prompt_model or not embed_model:
        raise ConfigurationError("ROUTER_PROMPT_MODEL and ROUTER_EMBED_MODEL must be set")
    config = RouterConfig(
        prompt_model=prompt_model,
        default_embed_model=embed_model,
        catalog_path=os.getenv("ROUTER_CATALOG_PATH", "./catalog"),
    )
    router = Router(config, InferenceBackend(loader=openai_loader()))
    return create_app(router)
