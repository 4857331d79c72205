"""Pydantic models for the MediaWiki ``action=query`` responses used by the importer.

Responses are requested with ``formatversion=2`` so pages arrive as a list.
Decoding never raises: callers get one of ``Decoded``, ``ShapeMismatch`` or
``ApiFailure`` and decide what to do with it.
"""

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

T = TypeVar("T")


class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)


class ApiErrorBody(_ApiModel):
    code: str = "unknown"
    info: str = ""


class RevisionSlot(_ApiModel):
    content: str | None = None


class Revision(_ApiModel):
    slots: dict[str, RevisionSlot] = Field(default_factory=dict)
    content: str | None = None

    @property
    def text(self) -> str:
        main = self.slots.get("main")
        if main is not None and main.content:
            return main.content
        return self.content or ""


class Thumbnail(_ApiModel):
    source: str
    width: int | None = None
    height: int | None = None


class TitleRef(_ApiModel):
    title: str = ""


class LangLink(_ApiModel):
    lang: str
    title: str = ""


class ExtMetadataValue(_ApiModel):
    value: Any = None

    @property
    def text(self) -> str | None:
        if self.value is None:
            return None
        return str(self.value)


class ImageInfo(_ApiModel):
    url: str | None = None
    mime: str | None = None
    size: int | None = None
    width: int | None = None
    height: int | None = None
    extmetadata: dict[str, ExtMetadataValue] = Field(default_factory=dict)

    def meta(self, *keys: str) -> str | None:
        for key in keys:
            entry = self.extmetadata.get(key)
            if entry is not None and entry.text:
                return entry.text
        return None


class QueryPage(_ApiModel):
    pageid: int | None = None
    title: str = ""
    missing: bool = False
    invalid: bool = False
    fullurl: str | None = None
    extract: str | None = None
    revisions: list[Revision] = Field(default_factory=list)
    pageimage: str | None = None
    thumbnail: Thumbnail | None = None
    images: list[TitleRef] = Field(default_factory=list)
    langlinks: list[LangLink] = Field(default_factory=list)
    imageinfo: list[ImageInfo] = Field(default_factory=list)


class SearchHit(_ApiModel):
    pageid: int | None = None
    title: str
    snippet: str = ""


class QueryBody(_ApiModel):
    pages: list[QueryPage] = Field(default_factory=list)
    search: list[SearchHit] = Field(default_factory=list)


class QueryResponse(_ApiModel):
    query: QueryBody | None = None
    error: ApiErrorBody | None = None
    continue_: dict[str, Any] | None = Field(default=None, alias="continue")

    @property
    def first_page(self) -> QueryPage | None:
        if self.query is None or not self.query.pages:
            return None
        return self.query.pages[0]


@dataclass(frozen=True)
class Decoded(Generic[T]):
    value: T


@dataclass(frozen=True)
class ShapeMismatch:
    operation: str
    detail: str


@dataclass(frozen=True)
class ApiFailure:
    operation: str
    code: str
    info: str


DecodeResult = Decoded[QueryResponse] | ShapeMismatch | ApiFailure


def decode_query_response(data: Any, operation: str) -> DecodeResult:
    if not isinstance(data, dict):
        return ShapeMismatch(operation=operation, detail=f"expected object, got {type(data).__name__}")
    try:
        response = QueryResponse.model_validate(data)
    except ValidationError as exc:
        return ShapeMismatch(operation=operation, detail=str(exc))
    if response.error is not None:
        return ApiFailure(operation=operation, code=response.error.code, info=response.error.info)
    return Decoded(value=response)
