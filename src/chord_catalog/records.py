"""Catalog record model, id derivation, and write-boundary validation.

The wire form (remote index and cache snapshot) keeps the historical field
names: ``objectID``, ``time``, ``type``, ``chords``, ``dateCreated``,
``dateModified`` and ``searchableText``. Python code uses the snake_case
attribute names; both spellings are accepted on input.
"""

import re
import time
from collections import Counter
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from chord_catalog.constants import DEFAULT_KEY, DEFAULT_STYLE_TYPE, DEFAULT_TIME_SIGNATURE, ID_MAX_LENGTH
from chord_catalog.exceptions import ValidationFailed

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")

_FIELD_DEFAULTS = {
    "key": DEFAULT_KEY,
    "time_signature": DEFAULT_TIME_SIGNATURE,
    "style_type": DEFAULT_STYLE_TYPE,
}


def derive_id(title: str) -> str:
    """Derive the stable record id from a title.

    Lowercases, drops everything outside ``[a-z0-9]`` and whitespace,
    collapses whitespace runs into ``-`` and caps the length. Distinct titles
    can collide ("The Kesh Jig" and "the kesh jig!!" both give
    ``the-kesh-jig``); collisions are rejected at write time, not resolved here.
    """
    normalized = _NON_ALNUM.sub("", title.lower()).strip()
    return _WHITESPACE.sub("-", normalized)[:ID_MAX_LENGTH]


def now_ms() -> int:
    """Return the current time as Unix epoch milliseconds."""
    return int(time.time() * 1000)


def build_searchable_text(title: str, key: str, style_type: str, sections: Mapping[str, str]) -> str:
    """Concatenate the fields the offline and remote search match against."""
    chord_text = " ".join(sections.values())
    return f"{title} {key} {style_type} {chord_text}"


class CatalogRecord(BaseModel):
    """One chord chart: identifying metadata plus section-keyed progressions."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default="", alias="objectID")
    title: str
    key: str = DEFAULT_KEY
    time_signature: str = Field(default=DEFAULT_TIME_SIGNATURE, alias="time")
    style_type: str = Field(default=DEFAULT_STYLE_TYPE, alias="type")
    sections: dict[str, str] = Field(default_factory=dict, alias="chords")
    hidden: bool = False
    created_at: int | None = Field(default=None, alias="dateCreated")
    modified_at: int | None = Field(default=None, alias="dateModified")
    searchable_text: str = Field(default="", alias="searchableText")
    popularity: int | float = 0

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value.strip() if isinstance(value, str) else value

    @field_validator("key", "time_signature", "style_type", mode="before")
    @classmethod
    def _default_blank(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return _FIELD_DEFAULTS[info.field_name]
        return value.strip() if isinstance(value, str) else value

    @field_validator("sections", mode="before")
    @classmethod
    def _normalize_sections(cls, value: Any) -> Any:
        """Accept token lists or delimited strings; keep only the string form."""
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            return value
        normalized: dict[str, str] = {}
        for name, progression in value.items():
            if isinstance(progression, (list, tuple)):
                progression = " ".join(str(token) for token in progression)
            section = str(name).strip()
            text = str(progression).strip() if progression is not None else ""
            if section and text:
                normalized[section] = text
        return normalized

    @field_validator("hidden", mode="before")
    @classmethod
    def _hidden_default(cls, value: Any) -> Any:
        return False if value is None else value

    @property
    def chord_text(self) -> str:
        """All section progressions joined with spaces."""
        return " ".join(self.sections.values())

    def to_wire(self) -> dict[str, Any]:
        """Serialize using the remote index / cache field names."""
        return self.model_dump(mode="json", by_alias=True)

    def semantic_fields(self) -> dict[str, Any]:
        """Fields that must survive an export/import round trip unchanged."""
        return {
            "id": self.id,
            "title": self.title,
            "key": self.key,
            "time_signature": self.time_signature,
            "style_type": self.style_type,
            "sections": dict(self.sections),
            "hidden": self.hidden,
        }


def stamp_for_write(
    record: CatalogRecord,
    existing: CatalogRecord | None = None,
    *,
    now: int | None = None,
) -> CatalogRecord:
    """Return a copy of *record* ready to be written.

    Sets the derived id, keeps ``created_at`` immutable once set, moves
    ``modified_at`` forward monotonically and recomputes ``searchable_text``.
    """
    timestamp = now if now is not None else now_ms()
    if existing is not None and existing.created_at is not None:
        created_at = existing.created_at
    else:
        created_at = record.created_at if record.created_at is not None else timestamp
    previous_modified = existing.modified_at if existing is not None and existing.modified_at is not None else 0
    modified_at = max(timestamp, created_at, previous_modified)
    return record.model_copy(
        update={
            "id": derive_id(record.title),
            "created_at": created_at,
            "modified_at": modified_at,
            "searchable_text": build_searchable_text(record.title, record.key, record.style_type, record.sections),
            "sections": dict(record.sections),
        }
    )


def _record_errors(record: CatalogRecord, label: str) -> list[str]:
    errors: list[str] = []
    if not record.title:
        errors.append(f"{label}: missing title")
    elif not derive_id(record.title):
        errors.append(f"{label}: title {record.title!r} yields an empty id")
    if not record.sections:
        errors.append(f"{label}: at least one chord section is required")
    return errors


def _record_warnings(record: CatalogRecord, label: str) -> list[str]:
    warnings: list[str] = []
    if record.key == DEFAULT_KEY:
        warnings.append(f"{label}: missing key")
    if record.style_type == DEFAULT_STYLE_TYPE:
        warnings.append(f"{label}: missing type")
    return warnings


def validate_record(record: CatalogRecord) -> list[str]:
    """Validate a single record before any backend is touched.

    Returns non-fatal warnings.

    Raises:
        ValidationFailed: If the title is empty, yields an empty id, or
            there are no chord sections.
    """
    label = f"Song {record.title!r}" if record.title else "Song"
    errors = _record_errors(record, label)
    if errors:
        raise ValidationFailed(errors)
    return _record_warnings(record, label)


def validate_batch(records: Iterable[CatalogRecord]) -> list[str]:
    """Validate a batch, including duplicate ids inside the batch.

    Every problem is reported at once. Returns non-fatal warnings.

    Raises:
        ValidationFailed: If any record is invalid or two records share an id.
    """
    items = list(records)
    errors: list[str] = []
    warnings: list[str] = []
    for index, record in enumerate(items):
        label = f"Song {index}"
        errors.extend(_record_errors(record, label))
        warnings.extend(_record_warnings(record, label))

    counts = Counter(derive_id(record.title) for record in items if record.title)
    errors.extend(f"Duplicate objectID found: {record_id}" for record_id, n in counts.items() if record_id and n > 1)

    if errors:
        raise ValidationFailed(errors)
    return warnings
