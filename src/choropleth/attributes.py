"""Schema-driven parser for loosely structured attribute tables."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import requests

from .errors import RecordParseError
from .models import DEFAULT_KEY_SUFFIXES, AttributeRecord, Issue

_LOGGER = logging.getLogger("choropleth.attributes")

FIELD_KINDS = ("key", "number", "area")

_FOOTNOTE_RE = re.compile(r"\[[^\]]*\]")
_WELL_FORMED_NUMBER_RE = re.compile(r"^-?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?$")
_AREA_RE = re.compile(r"^(?P<number>[-\d,.\s]+?)\s*(?P<unit>[^\d\s,.].*)$")

# Factors to square miles.
AREA_UNITS: Mapping[str, float] = {
    "sqmi": 1.0,
    "mi2": 1.0,
    "mi²": 1.0,
    "squaremiles": 1.0,
    "squaremile": 1.0,
    "sqkm": 0.386102,
    "km2": 0.386102,
    "km²": 0.386102,
    "squarekilometers": 0.386102,
    "squarekilometres": 0.386102,
    "ha": 0.00386102,
}

_NAME_SHAPE = r"[^\W\d_][\w .,'&()\[\]-]*"
_NUMBER_SHAPE = r"-?\d[\d,.]*(?:\s*\[[^\]]*\])*"
_AREA_SHAPE = r"-?\d[\d,.]*(?:\s*\[[^\]]*\])*\s*[^\W\d_][\w².\s]*"


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """One positional column of the attribute table."""

    name: str
    kind: str
    pattern: str
    strip_suffixes: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.kind not in FIELD_KINDS:
            raise ValueError(f"Field kind must be one of {', '.join(FIELD_KINDS)}; got '{self.kind}'")
        re.compile(self.pattern)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> FieldSpec:
        name = data.get("name")
        kind = data.get("kind")
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Expected non-empty string for 'fields[].name'")
        if not isinstance(kind, str):
            raise ValueError(f"Expected string for 'fields[{name}].kind'")
        default_pattern = {"key": _NAME_SHAPE, "number": _NUMBER_SHAPE, "area": _AREA_SHAPE}.get(
            kind.strip(), _NUMBER_SHAPE
        )
        pattern = data.get("pattern", default_pattern)
        if not isinstance(pattern, str):
            raise ValueError(f"Expected regex string for 'fields[{name}].pattern'")
        suffixes_raw = data.get("strip_suffixes", [])
        if not isinstance(suffixes_raw, list):
            raise ValueError(f"Expected list for 'fields[{name}].strip_suffixes'")
        return cls(
            name=name.strip(),
            kind=kind.strip(),
            pattern=pattern,
            strip_suffixes=tuple(str(item) for item in suffixes_raw),
        )


@dataclass(frozen=True, slots=True)
class TableSchema:
    """Declared shape of one table line: delimiter plus positional fields."""

    fields: tuple[FieldSpec, ...]
    delimiter: str = r"\s*[|\t;]\s*|\s{2,}"
    comment_prefix: str = "#"
    area_units: Mapping[str, float] = field(default_factory=lambda: dict(AREA_UNITS))

    def __post_init__(self) -> None:
        keys = [spec for spec in self.fields if spec.kind == "key"]
        if len(keys) != 1:
            raise ValueError("Attribute schema needs exactly one 'key' field")
        names = [spec.name for spec in self.fields]
        if len(set(names)) != len(names):
            raise ValueError("Attribute schema field names must be unique")
        re.compile(self.delimiter)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> TableSchema:
        fields_raw = data.get("fields")
        if not isinstance(fields_raw, list) or not fields_raw:
            raise ValueError("Expected non-empty list for 'attributes.fields'")
        fields: list[FieldSpec] = []
        for idx, item in enumerate(fields_raw):
            if not isinstance(item, Mapping):
                raise ValueError(f"Expected mapping for 'attributes.fields[{idx}]'")
            fields.append(FieldSpec.from_mapping(item))
        kwargs: dict[str, Any] = {}
        if "delimiter" in data:
            kwargs["delimiter"] = str(data["delimiter"])
        if "comment_prefix" in data:
            kwargs["comment_prefix"] = str(data["comment_prefix"])
        return cls(fields=tuple(fields), **kwargs)

    @property
    def key_field(self) -> FieldSpec:
        return next(spec for spec in self.fields if spec.kind == "key")

    @property
    def key_suffixes(self) -> tuple[str, ...]:
        """Suffixes dropped from keys; rings must be keyed with the same ones."""
        return self.key_field.strip_suffixes


DEFAULT_SCHEMA = TableSchema(
    fields=(
        FieldSpec(name="name", kind="key", pattern=_NAME_SHAPE, strip_suffixes=DEFAULT_KEY_SUFFIXES),
        FieldSpec(name="population", kind="number", pattern=_NUMBER_SHAPE),
        FieldSpec(name="area", kind="area", pattern=_AREA_SHAPE),
    )
)


@dataclass(frozen=True, slots=True)
class ParseResult:
    records: tuple[AttributeRecord, ...]
    skipped: tuple[Issue, ...] = ()
    errors: tuple[RecordParseError, ...] = ()

    @property
    def issues(self) -> tuple[Issue, ...]:
        parse_errors = tuple(
            Issue(
                stage="parse",
                key=f"line {err.line_number}" if err.line_number is not None else None,
                message=str(err),
            )
            for err in self.errors
        )
        return (*self.skipped, *parse_errors)


class AttributeTableParser:
    """Line-oriented parser that validates each line against a TableSchema."""

    def __init__(self, schema: TableSchema = DEFAULT_SCHEMA) -> None:
        self.schema = schema
        self._delimiter = re.compile(schema.delimiter)
        self._shapes = tuple(re.compile(spec.pattern) for spec in schema.fields)

    def parse(self, raw_text: str) -> ParseResult:
        return self.parse_lines(raw_text.splitlines())

    def parse_lines(self, lines: Iterable[str]) -> ParseResult:
        records: list[AttributeRecord] = []
        skipped: list[Issue] = []
        errors: list[RecordParseError] = []
        for line_number, line in enumerate(lines, start=1):
            stripped = line.strip()
            if not stripped:
                continue
            if self.schema.comment_prefix and stripped.startswith(self.schema.comment_prefix):
                continue
            tokens = self._match_shape(stripped)
            if tokens is None:
                _LOGGER.debug("Skipping line %d (shape mismatch): %s", line_number, stripped)
                skipped.append(
                    Issue(
                        stage="parse",
                        key=f"line {line_number}",
                        message=f"skipped line not matching table schema: {stripped[:80]!r}",
                    )
                )
                continue
            try:
                records.append(self._normalize(tokens, line_number=line_number, line=stripped))
            except RecordParseError as exc:
                _LOGGER.debug("Rejected line %d: %s", line_number, exc)
                errors.append(exc)

        _LOGGER.info(
            "Parsed attribute table: records=%d, skipped=%d, rejected=%d",
            len(records),
            len(skipped),
            len(errors),
        )
        return ParseResult(records=tuple(records), skipped=tuple(skipped), errors=tuple(errors))

    def _match_shape(self, line: str) -> list[str] | None:
        tokens = [token.strip() for token in self._delimiter.split(line) if token and token.strip()]
        if len(tokens) != len(self.schema.fields):
            return None
        for token, shape in zip(tokens, self._shapes):
            if shape.fullmatch(token) is None:
                return None
        return tokens

    def _normalize(self, tokens: Sequence[str], *, line_number: int, line: str) -> AttributeRecord:
        name = ""
        suffixes: Sequence[str] = ()
        values: dict[str, float] = {}
        for spec, token in zip(self.schema.fields, tokens):
            if spec.kind == "key":
                name = " ".join(_FOOTNOTE_RE.sub("", token).split())
                suffixes = spec.strip_suffixes
            elif spec.kind == "number":
                values[spec.name] = self._to_number(token, spec, line_number=line_number, line=line)
            else:
                values[spec.name] = self._to_area(token, spec, line_number=line_number, line=line)
        try:
            return AttributeRecord.create(name, values, line_number=line_number, strip_suffixes=suffixes)
        except ValueError as exc:
            raise RecordParseError(str(exc), line_number=line_number, line=line) from exc

    @staticmethod
    def _to_number(token: str, spec: FieldSpec, *, line_number: int, line: str) -> float:
        cleaned = _FOOTNOTE_RE.sub("", token).strip().rstrip(".")
        if not _WELL_FORMED_NUMBER_RE.match(cleaned):
            raise RecordParseError(
                f"{spec.name}: {token!r} is not a well-formed number",
                line_number=line_number,
                line=line,
            )
        return float(cleaned.replace(",", ""))

    def _to_area(self, token: str, spec: FieldSpec, *, line_number: int, line: str) -> float:
        cleaned = _FOOTNOTE_RE.sub("", token).strip()
        match = _AREA_RE.match(cleaned)
        if match is None:
            raise RecordParseError(
                f"{spec.name}: {token!r} is not a number followed by an area unit",
                line_number=line_number,
                line=line,
            )
        unit_key = "".join(ch for ch in match.group("unit").casefold() if ch.isalnum() or ch == "²")
        factor = self.schema.area_units.get(unit_key)
        if factor is None:
            raise RecordParseError(
                f"{spec.name}: unknown area unit {match.group('unit').strip()!r}",
                line_number=line_number,
                line=line,
            )
        number = self._to_number(match.group("number").strip(), spec, line_number=line_number, line=line)
        return number * factor


def parse(raw_text: str, schema: TableSchema = DEFAULT_SCHEMA) -> ParseResult:
    """Parse ``raw_text`` into attribute records; bad lines never abort the batch."""
    return AttributeTableParser(schema).parse(raw_text)


def read_source(
    location: str | Path,
    *,
    timeout_s: float = 10.0,
    user_agent: str = "choropleth/0.1",
    encoding: str = "utf-8",
) -> str:
    """Read attribute text from a local path or an http(s) URL."""
    text_location = str(location)
    if text_location.startswith(("http://", "https://")):
        response = requests.get(text_location, timeout=timeout_s, headers={"User-Agent": user_agent})
        response.raise_for_status()
        _LOGGER.info("Fetched attribute source %s (%d bytes)", text_location, len(response.content))
        return response.text
    path = Path(location)
    if not path.exists():
        raise FileNotFoundError(f"Attribute source not found: {path}")
    return path.read_text(encoding=encoding)

