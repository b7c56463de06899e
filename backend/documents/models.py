"""
Document generation request/response shapes.

- validate_document_request(): the checks the REST route applies before
  calling the provider
- facts_context(): the "facts" context built from the visible fact set
- GeneratedDocument: read-only view over the provider payload, sections in
  display order
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from constants import DEFAULT_DOCUMENT_NAME, DEFAULT_FACT_GROUP, DEFAULT_FACT_SOURCE
from facts.reconcile import Fact


class DocumentRequestError(ValueError):
    """Client sent an unusable document request (HTTP 400)."""


def validate_document_request(body: Any) -> dict[str, Any]:
    """
    Check a create-document body and return the provider request.

    Raises:
        DocumentRequestError with the message returned to the client.
    """
    if not isinstance(body, Mapping):
        body = {}

    context = body.get("context")
    if not isinstance(context, list) or len(context) == 0:
        raise DocumentRequestError("Context is required and must be a non-empty array")
    if not body.get("templateKey"):
        raise DocumentRequestError("templateKey is required")
    if not body.get("outputLanguage"):
        raise DocumentRequestError("outputLanguage is required")

    return {
        "context": context,
        "templateKey": body["templateKey"],
        "outputLanguage": body["outputLanguage"],
        "name": body.get("name") or DEFAULT_DOCUMENT_NAME,
    }


def facts_context(facts: Iterable[Fact]) -> list[dict[str, Any]]:
    """Document context made of the visible facts, in display order."""
    return [{
        "type": "facts",
        "data": [
            {
                "text": f.text,
                "group": f.group or DEFAULT_FACT_GROUP,
                "source": f.source or DEFAULT_FACT_SOURCE,
            }
            for f in facts
        ],
    }]


@dataclass(frozen=True)
class DocumentSection:
    key: str
    name: str
    text: str
    sort: int | float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> DocumentSection:
        sort = raw.get("sort")
        return cls(
            key=str(raw.get("key") or ""),
            name=str(raw.get("name") or ""),
            text=str(raw.get("text") or ""),
            sort=sort if isinstance(sort, (int, float)) else 0,
        )


@dataclass(frozen=True)
class GeneratedDocument:
    id: str | None
    name: str | None
    sections: tuple[DocumentSection, ...]

    @classmethod
    def from_provider(cls, raw: Mapping[str, Any]) -> GeneratedDocument:
        return cls(
            id=raw.get("id"),
            name=raw.get("name"),
            sections=tuple(
                DocumentSection.from_mapping(s)
                for s in raw.get("sections") or ()
                if isinstance(s, Mapping)
            ),
        )

    def sorted_sections(self) -> list[DocumentSection]:
        """Ascending sort; ties keep provider order (sorted() is stable)."""
        return sorted(self.sections, key=lambda s: s.sort)


def render_document_text(document: GeneratedDocument) -> str:
    """Plain-text rendering: "name" heading then text, per section."""
    blocks = []
    for section in document.sorted_sections():
        blocks.append(f"{section.name}\n{section.text}" if section.name else section.text)
    return "\n\n".join(blocks)
