"""
Per-source schema: which fields a listing has and how users may filter and
sort on them.

These models are the validated form of the JSON stored on SourceConfig.
Malformed column/filter/sort definitions are rejected here, before anything
is persisted.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class ColumnKind(str, Enum):
    CORE = "core"
    EXTENSION = "extension"


class FilterKind(str, Enum):
    TEXT = "text"
    NUMBER_RANGE = "number_range"
    SELECT = "select"


# Listing attributes that are first-class columns, usable as filter targets
# and ORDER BY targets without going through the extension map.
CORE_FIELDS = frozenset({
    "item_id",
    "url",
    "title",
    "price",
    "currency",
    "score",
    "first_seen_at",
    "last_seen_at",
    "archived_at",
})

# Sort used when a source has no sorts configured
DEFAULT_SORT_COLUMN = "last_seen_at"


class ColumnSpec(BaseModel):
    id: str = Field(min_length=1)
    label: str
    kind: ColumnKind = ColumnKind.CORE
    is_numeric: bool = False
    display_hint: Optional[str] = None

    @field_validator("kind", mode="before")
    @classmethod
    def accept_legacy_kind(cls, value):
        # Older configs call extension columns "game_specific"
        if value == "game_specific":
            return ColumnKind.EXTENSION
        return value


class FilterSpec(BaseModel):
    id: str = Field(min_length=1)
    label: str
    kind: FilterKind
    is_advanced: bool = False
    param_name: Optional[str] = None
    param_name_min: Optional[str] = None
    param_name_max: Optional[str] = None
    placeholder: Optional[str] = None
    options: Optional[list[str]] = None


class SortSpec(BaseModel):
    id: str = Field(min_length=1)
    label: str
    column: str = Field(min_length=1)
    ascending: bool = False


def check_spec_lists(columns: list[ColumnSpec], filters: list[FilterSpec], sorts: list[SortSpec]) -> None:
    for name, specs in (("columns", columns), ("filters", filters), ("sorts", sorts)):
        ids = [spec.id for spec in specs]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"duplicate {name} ids: {', '.join(duplicates)}")

    for column in columns:
        if column.kind == ColumnKind.CORE and column.id not in CORE_FIELDS:
            raise ValueError(
                f"column '{column.id}' is marked core but listings have no such attribute; "
                "use kind 'extension'"
            )

    extension_ids = {c.id for c in columns if c.kind == ColumnKind.EXTENSION}
    for sort in sorts:
        if sort.column not in CORE_FIELDS and sort.column not in extension_ids:
            raise ValueError(f"sort '{sort.id}' targets unknown column '{sort.column}'")


class SourceSchema(BaseModel):
    """The three ordered spec lists of a source, validated together."""
    columns: list[ColumnSpec] = Field(default_factory=list)
    filters: list[FilterSpec] = Field(default_factory=list)
    sorts: list[SortSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_specs(self):
        check_spec_lists(self.columns, self.filters, self.sorts)
        return self

    @classmethod
    def from_source(cls, source) -> "SourceSchema":
        """Rebuild the typed schema from a SourceConfig row."""
        return cls(
            columns=source.columns or [],
            filters=source.filters or [],
            sorts=source.sorts or [],
        )

    def column(self, column_id: str) -> Optional[ColumnSpec]:
        return next((c for c in self.columns if c.id == column_id), None)

    def filter(self, filter_id: str) -> Optional[FilterSpec]:
        return next((f for f in self.filters if f.id == filter_id), None)

    def sort(self, sort_id: Optional[str]) -> Optional[SortSpec]:
        return next((s for s in self.sorts if s.id == sort_id), None)

    def extension_columns(self) -> list[ColumnSpec]:
        return [c for c in self.columns if c.kind == ColumnKind.EXTENSION]


class SourceConfigBase(BaseModel):
    slug: str = Field(min_length=1, max_length=100, pattern=r"^[a-z0-9][a-z0-9_-]*$")
    name: str = Field(min_length=1)
    category: Optional[str] = None
    description: Optional[str] = None
    api_base_url: str = Field(min_length=1)
    list_path: str = "/"
    check_path_template: str = "/item/{id}"
    default_filters: dict[str, str | int | float] = Field(default_factory=dict)
    columns: list[ColumnSpec] = Field(default_factory=list)
    filters: list[FilterSpec] = Field(default_factory=list)
    sorts: list[SortSpec] = Field(default_factory=list)
    fetch_worker_enabled: bool = True
    check_worker_enabled: bool = True
    fetch_interval_minutes: int = Field(60, ge=1)
    fetch_page_limit: Optional[int] = Field(10, ge=1)

    @field_validator("check_path_template")
    @classmethod
    def template_has_id(cls, value: str) -> str:
        if "{id}" not in value:
            raise ValueError("check_path_template must contain an {id} placeholder")
        return value

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @model_validator(mode="after")
    def check_schema(self):
        check_spec_lists(self.columns, self.filters, self.sorts)
        return self

    def to_row_fields(self) -> dict:
        """Plain-JSON field dict ready to assign onto a SourceConfig row."""
        return self.model_dump(mode="json")


class SourceConfigCreate(SourceConfigBase):
    pass


class SourceConfigUpdate(SourceConfigBase):
    pass


class SourceConfigResponse(SourceConfigBase):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
