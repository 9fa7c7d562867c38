"""Built-in source presets, seeded into an empty source_configs table at startup."""
import logging

from sqlalchemy.orm import Session

from listingsync.models.source_config import SourceConfig
from listingsync.schemas.source import SourceConfigCreate

logger = logging.getLogger(__name__)

MARKET_API_BASE_URL = "https://prod-api.lzt.market"
CHECK_PATH_TEMPLATE = "/item/{id}/check-account"

_BASE_COLUMNS = [
    {"id": "item_id", "label": "Item ID", "kind": "core", "is_numeric": True},
    {"id": "title", "label": "Title", "kind": "core", "display_hint": "wide"},
    {"id": "url", "label": "URL", "kind": "core", "display_hint": "link"},
    {"id": "price", "label": "Price", "kind": "core", "is_numeric": True},
]

_SCORE_COLUMN = {"id": "score", "label": "Deal Score", "kind": "core", "is_numeric": True}

_BASE_FILTERS = [
    {"id": "title", "label": "Search", "kind": "text", "param_name": "title"},
    {"id": "price", "label": "Price", "kind": "number_range", "param_name_min": "pmin", "param_name_max": "pmax"},
]

_BASE_SORTS = [
    {"id": "pdate_to_down", "label": "Newest First", "column": "last_seen_at", "ascending": False},
    {"id": "price_to_up", "label": "Price: Low to High", "column": "price", "ascending": True},
    {"id": "price_to_down", "label": "Price: High to Low", "column": "price", "ascending": False},
]

_SCORE_SORT = {"id": "deal_score", "label": "Deal Score", "column": "score", "ascending": False}


def _preset(slug: str, name: str, category: str, description: str, list_path: str,
            columns: list, filters: list, sorts: list) -> dict:
    return {
        "slug": slug,
        "name": name,
        "category": category,
        "description": description,
        "api_base_url": MARKET_API_BASE_URL,
        "list_path": list_path,
        "check_path_template": CHECK_PATH_TEMPLATE,
        "default_filters": {"currency": "usd"},
        "columns": columns,
        "filters": filters,
        "sorts": sorts,
    }


PRESETS = {
    "all": _preset(
        "all", "All Accounts", "All",
        "Browse listings from all game categories simultaneously.",
        "/",
        columns=_BASE_COLUMNS + [
            {"id": "item_origin", "label": "Origin", "kind": "extension"},
            {"id": "first_seen_at", "label": "First Seen", "kind": "core"},
            {"id": "last_seen_at", "label": "Last Seen", "kind": "core"},
        ],
        filters=_BASE_FILTERS,
        sorts=_BASE_SORTS,
    ),
    "steam": _preset(
        "steam", "Steam", "PC Gaming Platform",
        "General Steam accounts with various games, levels, and items.",
        "/steam",
        columns=_BASE_COLUMNS + [
            _SCORE_COLUMN,
            {"id": "steam_level", "label": "Level", "kind": "extension", "is_numeric": True},
            {"id": "steam_game_count", "label": "Games", "kind": "extension", "is_numeric": True},
            {"id": "steam_balance", "label": "Balance", "kind": "extension"},
            {"id": "steam_cs2_rank_id", "label": "CS2 Rank", "kind": "extension"},
            {"id": "steam_cs2_win_count", "label": "CS2 Wins", "kind": "extension", "is_numeric": True},
            {"id": "steam_dota2_solo_mmr", "label": "Dota2 MMR", "kind": "extension", "is_numeric": True},
        ],
        filters=_BASE_FILTERS + [
            {"id": "steam_level", "label": "Level", "kind": "number_range",
             "param_name_min": "lmin", "param_name_max": "lmax"},
            {"id": "steam_game_count", "label": "Games", "kind": "number_range", "is_advanced": True,
             "param_name_min": "gmin", "param_name_max": "gmax"},
            {"id": "game", "label": "Has Game (ID)", "kind": "text", "is_advanced": True,
             "param_name": "game[]", "placeholder": "e.g., 730"},
        ],
        sorts=_BASE_SORTS + [_SCORE_SORT],
    ),
    "fortnite": _preset(
        "fortnite", "Fortnite", "Battle Royale",
        "Fortnite accounts with skins, V-Bucks, and battle pass progress.",
        "/fortnite",
        columns=_BASE_COLUMNS + [
            _SCORE_COLUMN,
            {"id": "fortnite_level", "label": "Level", "kind": "extension", "is_numeric": True},
            {"id": "fortnite_balance", "label": "V-Bucks", "kind": "extension", "is_numeric": True},
            {"id": "fortnite_skin_count", "label": "Skins", "kind": "extension", "is_numeric": True},
            {"id": "fortnite_pickaxe_count", "label": "Pickaxes", "kind": "extension", "is_numeric": True},
            {"id": "fortnite_dance_count", "label": "Emotes", "kind": "extension", "is_numeric": True},
            {"id": "fortnite_glider_count", "label": "Gliders", "kind": "extension", "is_numeric": True},
            {"id": "first_seen_at", "label": "First Seen", "kind": "core"},
        ],
        filters=_BASE_FILTERS + [
            {"id": "fortnite_level", "label": "Level", "kind": "number_range",
             "param_name_min": "lmin", "param_name_max": "lmax"},
            {"id": "fortnite_balance", "label": "V-Bucks", "kind": "number_range",
             "param_name_min": "vbmin", "param_name_max": "vbmax"},
            {"id": "fortnite_skin_count", "label": "Skins Count", "kind": "number_range", "is_advanced": True,
             "param_name_min": "smin", "param_name_max": "smax"},
        ],
        sorts=_BASE_SORTS + [_SCORE_SORT],
    ),
    "mihoyo": _preset(
        "mihoyo", "miHoYo", "Gacha RPG",
        "Genshin Impact and Honkai: Star Rail accounts.",
        "/mihoyo",
        columns=[c for c in _BASE_COLUMNS if c["id"] != "title"] + [
            _SCORE_COLUMN,
            {"id": "mihoyo_region", "label": "Region", "kind": "extension"},
            {"id": "mihoyo_genshin_level", "label": "Genshin Lvl", "kind": "extension", "is_numeric": True},
            {"id": "mihoyo_genshin_legendary_characters_count", "label": "Genshin 5*",
             "kind": "extension", "is_numeric": True},
            {"id": "mihoyo_honkai_level", "label": "Honkai Lvl", "kind": "extension", "is_numeric": True},
            {"id": "mihoyo_honkai_legendary_characters_count", "label": "Honkai 5*",
             "kind": "extension", "is_numeric": True},
            {"id": "last_seen_at", "label": "Last Seen", "kind": "core"},
        ],
        filters=[
            _BASE_FILTERS[1],
            {"id": "mihoyo_region", "label": "Region", "kind": "select",
             "param_name": "region[]", "options": ["asia", "cht", "eu", "usa"]},
            {"id": "mihoyo_genshin_level", "label": "Genshin Level", "kind": "number_range", "is_advanced": True,
             "param_name_min": "genshin_level_min", "param_name_max": "genshin_level_max"},
            {"id": "mihoyo_genshin_legendary_characters_count", "label": "Genshin 5*", "kind": "number_range",
             "param_name_min": "genshin_legendary_min", "param_name_max": "genshin_legendary_max"},
            {"id": "mihoyo_honkai_level", "label": "Honkai Level", "kind": "number_range", "is_advanced": True,
             "param_name_min": "honkai_level_min", "param_name_max": "honkai_level_max"},
        ],
        sorts=_BASE_SORTS[:2] + [_SCORE_SORT],
    ),
}


def seed_default_sources(db: Session) -> int:
    """Insert the presets when no source exists yet. Returns how many were added."""
    if db.query(SourceConfig).count() > 0:
        return 0

    for preset in PRESETS.values():
        fields = SourceConfigCreate(**preset).to_row_fields()
        db.add(SourceConfig(**fields))
    db.commit()
    logger.info(f"Seeded {len(PRESETS)} default sources: {', '.join(PRESETS)}")
    return len(PRESETS)
