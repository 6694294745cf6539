"""
Search sync requests.

Requests are published by the Postgres triggers as JSON NOTIFY payloads, or
enqueued directly for a full account re-index.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ValidationError, field_validator, model_validator

from .errors import InvalidSearchRequestError


class SearchRequestType(str, Enum):
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    FULL_ACCOUNT_RE_INDEX = "FULL_ACCOUNT_RE_INDEX"


class SearchRequestPayload(BaseModel):
    id: int


class SearchRequest(BaseModel):
    """One entity to (re)index or delete, or one account to fully re-index."""

    type: SearchRequestType
    table: Optional[str] = None
    payload: SearchRequestPayload

    @field_validator("type", mode="before")
    @classmethod
    def insert_is_update(cls, value: Any) -> Any:
        if value == "INSERT":
            return SearchRequestType.UPDATE
        return value

    @model_validator(mode="after")
    def table_required(self) -> "SearchRequest":
        if self.type != SearchRequestType.FULL_ACCOUNT_RE_INDEX and not self.table:
            raise ValueError(f"A table is required for {self.type.value} requests")
        return self

    @property
    def is_full_account_re_index(self) -> bool:
        return self.type == SearchRequestType.FULL_ACCOUNT_RE_INDEX


def parse_search_request(raw: Union[str, bytes, dict]) -> SearchRequest:
    """Validate a NOTIFY payload.

    Args:
        raw: JSON string or already decoded dict

    Raises:
        InvalidSearchRequestError: If the payload is not valid JSON or not a valid request.
    """
    try:
        data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        return SearchRequest.model_validate(data)
    except (ValueError, ValidationError) as e:
        raise InvalidSearchRequestError(f"Invalid search request: {raw!r}") from e
