"""Pydantic models for JSON documents shipped inside libraries.

semantics.json describes the fields of a content type; language files
translate it. Both are only checked for the keys this package relies on,
everything else is kept as-is.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from libvault.errors import DocumentDecodeError


class SemanticsEntry(BaseModel):
    """A single field definition in semantics.json."""

    model_config = ConfigDict(extra="allow")

    name: str
    type: str
    label: str = ""
    fields: list[dict[str, Any]] = Field(default_factory=list)


class LanguageDocument(BaseModel):
    """The contents of language/<code>.json."""

    model_config = ConfigDict(extra="allow")

    semantics: list[dict[str, Any]] = Field(default_factory=list)


_SEMANTICS_ADAPTER = TypeAdapter(list[SemanticsEntry])


def decode_semantics(raw: bytes, source: str = "semantics.json") -> list[SemanticsEntry]:
    return _validate(_SEMANTICS_ADAPTER.validate_python, raw, source)


def decode_language(raw: bytes, source: str) -> LanguageDocument:
    return _validate(LanguageDocument.model_validate, raw, source)


def _validate(validator, raw: bytes, source: str):
    data = _load_json(raw, source)
    try:
        return validator(data)
    except ValidationError as e:
        raise DocumentDecodeError(f"{source} has an unexpected structure: {e}") from e


def _load_json(raw: bytes, source: str) -> Any:
    try:
        return json.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise DocumentDecodeError(f"{source} is not valid UTF-8: {e}") from e
    except json.JSONDecodeError as e:
        raise DocumentDecodeError(f"{source} is not valid JSON: {e}") from e
