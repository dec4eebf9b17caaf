"""
Engine configuration.

Tuning knobs for cadence, caps and thresholds. Defaults live in
DEFAULT_CONFIG; a JSON file can override any subset of keys.
"""

import json
import logging
from copy import deepcopy
from pathlib import Path
from typing import TypedDict

logger = logging.getLogger(__name__)


class PressChances(TypedDict, total=False):
    """Percent odds that a press conference is held."""
    post_match_base: int
    pre_match_base: int
    playoff_bonus: int
    loss_streak_bonus: int
    upset_win_bonus: int


class EngineConfig(TypedDict, total=False):
    """Narrative engine configuration."""
    category_cooldowns: dict[str, int]  # category -> minimum days between new events
    default_cooldown_days: int
    max_active_events: int  # concurrently active instances, across categories
    max_events_per_day: int
    minor_expiry_days: int
    major_expiry_days: int
    escalation_grace_days: int | None  # None disables escalation
    max_chain_depth: int  # chained triggers per resolution
    category_boost_days: int  # category idle this long gets boosted odds
    category_boost_multiplier: float
    history_limit: int
    rivalry_active_threshold: int
    sponsor_trust_low_threshold: int
    low_morale_threshold: int
    crisis_loss_streak: int
    press_conference_size: int
    press_chances: PressChances


DEFAULT_CONFIG: EngineConfig = {
    "category_cooldowns": {
        "player_ego": 7,
        "team_synergy": 7,
        "external_pressure": 10,
        "practice_burnout": 5,
        "breakthrough": 7,
        "meta_rumors": 7,
        "visa_arc": 14,
        "coaching_overhaul": 21,
        "igl_crisis": 14,
        "team_identity": 10,
    },
    "default_cooldown_days": 7,
    "max_active_events": 3,
    "max_events_per_day": 3,
    "minor_expiry_days": 7,
    "major_expiry_days": 14,
    "escalation_grace_days": 5,
    "max_chain_depth": 1,
    "category_boost_days": 5,
    "category_boost_multiplier": 2.0,
    "history_limit": 100,
    "rivalry_active_threshold": 40,
    "sponsor_trust_low_threshold": 30,
    "low_morale_threshold": 30,
    "crisis_loss_streak": 3,
    "press_conference_size": 2,
    "press_chances": {
        "post_match_base": 80,
        "pre_match_base": 80,
        "playoff_bonus": 20,
        "loss_streak_bonus": 15,
        "upset_win_bonus": 15,
    },
}


def default_config() -> EngineConfig:
    return deepcopy(DEFAULT_CONFIG)


def merge_config(overrides: dict | None) -> EngineConfig:
    """Overlay a partial config on the defaults. Nested dicts merge one level deep."""
    config = default_config()
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(config.get(key), dict):
            config[key] = {**config[key], **value}
        else:
            config[key] = value
    return config


def load_config(path: Path | str | None = None) -> EngineConfig:
    """Load config from a JSON file, or return defaults if not found."""
    if path is None:
        return default_config()

    path = Path(path)
    if not path.exists():
        return default_config()

    try:
        with open(path, "r", encoding="utf-8") as f:
            saved = json.load(f)
        return merge_config(saved)
    except (json.JSONDecodeError, IOError) as e:
        logger.warning("Could not read engine config %s: %s", path, e)
        return default_config()


def save_config(config: EngineConfig, path: Path | str) -> bool:
    """Save config to file. Returns True on success."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except IOError:
        return False


def cooldown_days(config: EngineConfig, category: str) -> int:
    return config["category_cooldowns"].get(category, config["default_cooldown_days"])
