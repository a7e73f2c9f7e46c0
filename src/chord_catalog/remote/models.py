"""Pydantic models for remote index requests and responses.

These mirror the JSON shapes of an Algolia index. No DB or cache dependencies.
"""

import enum

from pydantic import BaseModel, ConfigDict, Field

from chord_catalog.records import CatalogRecord


class ConnectStatus(enum.StrEnum):
    """Outcome of a reachability check."""

    CONNECTED = "connected"
    UNREACHABLE = "unreachable"


class SearchOptions(BaseModel):
    """Search parameters forwarded to the index.

    ``hits_per_page=None`` means 100 for a text query and the page size
    ceiling (1000) for an empty query.
    """

    hits_per_page: int | None = None
    filters: str = ""


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class SearchResponse(BaseModel):
    """POST /1/indexes/{index}/query."""

    model_config = ConfigDict(populate_by_name=True)

    hits: list[CatalogRecord] = Field(default_factory=list)
    nb_hits: int = Field(default=0, alias="nbHits")
    hits_per_page: int | None = Field(default=None, alias="hitsPerPage")


class WriteTaskResponse(BaseModel):
    """Response of saveObject / deleteObject."""

    model_config = ConfigDict(populate_by_name=True)

    task_id: int | None = Field(default=None, alias="taskID")
    object_id: str | None = Field(default=None, alias="objectID")


class BatchResponse(BaseModel):
    """POST /1/indexes/{index}/batch."""

    model_config = ConfigDict(populate_by_name=True)

    task_id: int | None = Field(default=None, alias="taskID")
    object_ids: list[str] = Field(default_factory=list, alias="objectIDs")


class TaskStatusResponse(BaseModel):
    """GET /1/indexes/{index}/task/{taskID}."""

    status: str = ""
