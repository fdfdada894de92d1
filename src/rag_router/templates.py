"""Named Jinja templates rendered through langchain-core prompt templates."""

from __future__ import annotations

import threading
from typing import Any

from jinja2 import TemplateError
from langchain_core.prompts import PromptTemplate
from loguru import logger

from rag_router.errors import CollaboratorError, NotFoundError
from rag_router.types import Neighbor


class TemplateRenderer:
    """Name -> template registry.

    Templates use Jinja syntax (``{{ text }}``) and are compiled when
    registered, so syntax errors surface at `register` time. Registering an
    existing name overwrites it.
    """

    def __init__(self) -> None:
        self._templates: dict[str, PromptTemplate] = {}
        self._lock = threading.Lock()

    def register(self, name: str, text: str) -> None:
        try:
            template = PromptTemplate.from_template(text, template_format="jinja2")
        except TemplateError as exc:
            raise CollaboratorError(
                f"Template {name} does not compile", details=str(exc), template=name
            ) from exc
        with self._lock:
            self._templates[name] = template
        logger.debug("Registered template {} (variables={})", name, template.input_variables)

    def names(self) -> set[str]:
        with self._lock:
            return set(self._templates)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._templates

    def variables(self, name: str) -> list[str]:
        return list(self._get(name).input_variables)

    def render(self, name: str, context: dict[str, Any]) -> str:
        """Render `name` with `context`; every template variable must be supplied."""
        template = self._get(name)
        try:
            return template.invoke(dict(context)).to_string()
        except (KeyError, TemplateError, TypeError, ValueError) as exc:
            raise CollaboratorError(
                f"Failed to render template {name}", details=str(exc), template=name
            ) from exc

    def render_neighbor(self, name: str, neighbor: Neighbor) -> str:
        if "text" not in neighbor.metadata:
            raise CollaboratorError(
                f"Neighbor {neighbor.id} has no text to render", template=name
            )
        return self.render(
            name,
            {
                "id": neighbor.id,
                "score": neighbor.score,
                "text": neighbor.metadata["text"],
                "metadata": neighbor.metadata,
            },
        )

    def _get(self, name: str) -> PromptTemplate:
        with self._lock:
            template = self._templates.get(name)
        if template is None:
            raise NotFoundError(
                f"Template not found: {name}", resource_type="template", resource_id=name
            )
        return template
