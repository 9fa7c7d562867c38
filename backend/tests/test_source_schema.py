"""Tests for source schema validation."""
import pytest
from pydantic import ValidationError

from listingsync.schemas import SourceConfigCreate
from listingsync.schemas.source import ColumnKind, SourceSchema


def test_valid_source_round_trips_to_row_fields(source_fields):
    fields = SourceConfigCreate(**source_fields).to_row_fields()
    assert fields["columns"][4] == {
        "id": "steam_level", "label": "Level", "kind": "extension",
        "is_numeric": True, "display_hint": None,
    }
    assert fields["filters"][3]["options"] == ["eu", "us", "asia"]


def test_trailing_slash_is_stripped(source_fields):
    config = SourceConfigCreate(**{**source_fields, "api_base_url": "https://market.test/"})
    assert config.api_base_url == "https://market.test"


def test_game_specific_is_read_as_extension():
    schema = SourceSchema(columns=[{"id": "steam_level", "label": "Level", "kind": "game_specific"}])
    assert schema.columns[0].kind == ColumnKind.EXTENSION
    assert [c.id for c in schema.extension_columns()] == ["steam_level"]


@pytest.mark.parametrize("change, message", [
    ({"columns": [{"id": "steam_level", "label": "Level", "kind": "core"}]}, "marked core"),
    ({"filters": [{"id": "a", "label": "A", "kind": "text"}, {"id": "a", "label": "B", "kind": "text"}]},
     "duplicate filters ids"),
    ({"sorts": [{"id": "s", "label": "S", "column": "steam_rank"}]}, "unknown column"),
    ({"check_path_template": "/item/check"}, "{id}"),
])
def test_malformed_specs_rejected(source_fields, change, message):
    with pytest.raises(ValidationError, match=message):
        SourceConfigCreate(**{**source_fields, **change})


def test_unknown_filter_kind_rejected(source_fields):
    filters = [{"id": "x", "label": "X", "kind": "checkbox"}]
    with pytest.raises(ValidationError):
        SourceConfigCreate(**{**source_fields, "filters": filters})


def test_sort_may_target_core_or_extension_columns(source_fields):
    sorts = [
        {"id": "newest", "label": "Newest", "column": "first_seen_at"},
        {"id": "level", "label": "Level", "column": "steam_level", "ascending": True},
    ]
    config = SourceConfigCreate(**{**source_fields, "sorts": sorts})
    assert [s.column for s in config.sorts] == ["first_seen_at", "steam_level"]


def test_lookups(source):
    schema = SourceSchema.from_source(source)
    assert schema.column("price").is_numeric is True
    assert schema.filter("steam_region").param_name == "region[]"
    assert schema.sort("price_to_up").ascending is True
    assert schema.sort("missing") is None
