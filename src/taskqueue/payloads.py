# src/taskqueue/payloads.py — v1
"""Typed task payloads, a tagged union keyed by ``kind``.

The ``kind`` of a payload is the ``type`` of the task that carries it.
Payloads are serialized only when written to the tasks table.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class DigestFilePayload(BaseModel):
    """Run the digest coordinator over one file."""

    kind: Literal["digest-file"] = "digest-file"
    file_path: str
    reset: bool = False
    digester: str | None = None


class SemanticEmbedPayload(BaseModel):
    """Embed pending semantic documents of a file."""

    kind: Literal["semantic-embed"] = "semantic-embed"
    file_path: str
    document_ids: list[str] = Field(default_factory=list)


class KeywordIndexPayload(BaseModel):
    """Push a file's keyword document to the full-text index."""

    kind: Literal["keyword-index"] = "keyword-index"
    file_path: str
    document_id: str


TaskPayload = Annotated[
    Union[DigestFilePayload, SemanticEmbedPayload, KeywordIndexPayload],
    Field(discriminator="kind"),
]

_PAYLOAD_ADAPTER: TypeAdapter[TaskPayload] = TypeAdapter(TaskPayload)


def serialize_payload(payload: BaseModel) -> str:
    return payload.model_dump_json()


def parse_payload(raw: str) -> TaskPayload:
    """Parse stored task input.

    Raises:
        pydantic.ValidationError: If the JSON is malformed or the kind unknown.
    """
    return _PAYLOAD_ADAPTER.validate_json(raw)
