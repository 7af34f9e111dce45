"""Best-effort parsing of stored pillar content into typed models.

Stored content is schema-less. ``parse`` never raises: a JSON object always
yields :class:`Typed` content (invalid fields are dropped and reported), while
anything that is not an object (legacy markdown, lists, null) yields
:class:`Raw` so callers have to handle the untyped case explicitly.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import BaseModel, ValidationError

from advertis.models import PillarType
from advertis.pillar_schemas import PILLAR_MODELS, Lenient
from advertis.utils import json_parse

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Typed:
    value: Lenient


@dataclass(frozen=True)
class Raw:
    blob: Any


ParsedContent = Typed | Raw


@dataclass
class ParseResult:
    content: ParsedContent
    errors: list[str] = field(default_factory=list)

    @property
    def typed(self) -> Lenient | None:
        return self.content.value if isinstance(self.content, Typed) else None


class ContentParser(Protocol):
    def parse(self, stage: PillarType, raw: Any) -> ParseResult: ...


def _first_error(exc: ValidationError) -> str:
    errs = exc.errors()
    return errs[0]["msg"] if errs else str(exc)


def _nested_model(annotation: Any) -> type[BaseModel] | None:
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    return None


def _salvage(model: type[BaseModel], raw: dict[str, Any], path: str, errors: list[str]) -> dict[str, Any]:
    """Keep every field of *raw* that validates on its own, recursing into sub-objects."""
    kept: dict[str, Any] = {}
    for name, info in model.model_fields.items():
        if name not in raw:
            continue
        value = raw[name]
        try:
            model.model_validate({name: value})
            kept[name] = value
            continue
        except ValidationError as exc:
            reason = _first_error(exc)

        sub = _nested_model(info.annotation)
        if sub is not None and isinstance(value, dict):
            kept[name] = _salvage(sub, value, f"{path}{name}.", errors)
        elif isinstance(value, list):
            items = []
            for idx, item in enumerate(value):
                try:
                    model.model_validate({name: [item]})
                    items.append(item)
                except ValidationError as item_exc:
                    errors.append(f"{path}{name}[{idx}]: {_first_error(item_exc)}")
            kept[name] = items
        else:
            errors.append(f"{path}{name}: {reason}")
    return kept


class PillarContentParser:
    """Validates content against the pillar's pydantic model."""

    def parse(self, stage: PillarType, raw: Any) -> ParseResult:
        if raw is None:
            return ParseResult(Raw(None), ["No content"])
        data = raw
        if isinstance(raw, str):
            data = json_parse(raw, None)
            if not isinstance(data, dict):
                return ParseResult(Raw(raw), ["Content is legacy text, not a JSON object"])
        if not isinstance(data, dict):
            return ParseResult(Raw(raw), [f"Content is a {type(raw).__name__}, not a JSON object"])

        model = PILLAR_MODELS[PillarType(stage)]
        try:
            return ParseResult(Typed(model.model_validate(data)))
        except ValidationError:
            pass

        errors: list[str] = []
        value = model.model_validate(_salvage(model, data, "", errors))
        log.debug("Pillar %s parsed with %d dropped field(s)", stage, len(errors))
        return ParseResult(Typed(value), errors)


def parse_pillar_map(
    parser: ContentParser, contents: dict[PillarType, Any],
) -> dict[PillarType, Lenient]:
    """Parse several pillars, keeping only those that yield typed content."""
    parsed: dict[PillarType, Lenient] = {}
    for ptype, raw in contents.items():
        if raw is None:
            continue
        typed = parser.parse(ptype, raw).typed
        if typed is not None:
            parsed[ptype] = typed
    return parsed
