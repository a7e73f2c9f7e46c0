"""Import/export text format for the catalog.

Exports are a pretty-printed JSON array of records in wire form. Parsing
also accepts the legacy title-keyed mapping used by the original seed files::

    {"Cooley's Reel": {"key": "Em", "time": "4/4", "type": "Reel",
                       "chords": {"A": "Em D Em D"}}}
"""

import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from chord_catalog.exceptions import ValidationFailed
from chord_catalog.records import CatalogRecord, derive_id

logger = logging.getLogger(__name__)

EXPORT_INDENT = 4


def dump_catalog(records: Iterable[CatalogRecord]) -> str:
    """Serialize records to the re-loadable text format."""
    return json.dumps([record.to_wire() for record in records], indent=EXPORT_INDENT, ensure_ascii=False)


def parse_catalog(text: str) -> list[CatalogRecord]:
    """Parse exported (or legacy seed) text into records.

    Ids are re-derived from titles, so an edited title in the file yields
    the id the service would assign.

    Raises:
        ValidationFailed: If the text is not JSON, has the wrong shape, or
            any entry is not a valid record.
    """
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValidationFailed([f"Import file is not valid JSON: {exc.msg} (line {exc.lineno})"]) from exc

    if isinstance(payload, list):
        entries = payload
    elif isinstance(payload, Mapping):
        logger.info("Parsing legacy title-keyed catalog with %d entries", len(payload))
        entries = [_from_legacy(title, fields) for title, fields in payload.items()]
    else:
        raise ValidationFailed(["Import file must contain a JSON array or a title-keyed object"])

    records: list[CatalogRecord] = []
    errors: list[str] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            errors.append(f"Song {index}: expected an object, got {type(entry).__name__}")
            continue
        try:
            record = CatalogRecord.model_validate(entry)
        except ValidationError as exc:
            errors.append(f"Song {index}: {exc.error_count()} invalid field(s): {_first_error(exc)}")
            continue
        records.append(record.model_copy(update={"id": derive_id(record.title)}))

    if errors:
        raise ValidationFailed(errors)
    return records


def _from_legacy(title: str, fields: Any) -> Any:
    if not isinstance(fields, Mapping):
        return fields
    return {**fields, "title": title}


def _first_error(exc: ValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error["loc"])
    return f"{location}: {error['msg']}"
