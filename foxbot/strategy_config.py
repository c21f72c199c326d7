"""
Strategy Configuration

Tuning constants for the fox raid bot, read from one JSON file. Each
evaluator owns a section and looks its thresholds up by name, falling back
to its module-level constant when the key is absent.

Sections:
    intel     - intel resolver confidences and lookahead
    danger    - danger model thresholds and adjustments
    decision  - DASH/LURK/BURROW thresholds and dash pressure
    move      - SNATCH/FORAGE/SCOUT/SHIFT scoring
    ops       - action-card scoring, sampling and 2-card search
    combo     - combo matrix bonuses
    utility   - shared utility weights (w_loot, w_risk, w_team, ...)

Usage:
    from foxbot.strategy_config import get_config

    safe_max = get_config().get('decision', 'safe_danger_max', default=3.0)
    w_loot = get_config().get_weight('w_loot', default=6.0)

    # A preset on top of the packaged defaults
    cautious = StrategyConfig.from_dict({'decision': {'safe_danger_max': 2.0}},
                                        base=get_config())

The file is chosen by, in order: the explicit path, the
FOXBOT_STRATEGY_CONFIG environment variable, foxbot/configs/default.json.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "configs" / "default.json"
CONFIG_ENV_VAR = 'FOXBOT_STRATEGY_CONFIG'

SECTIONS = ('intel', 'danger', 'decision', 'move', 'ops', 'combo', 'utility')

# Keys echoed at DEBUG after a load, per section
_WATCHED_KEYS = {
    'decision': ('safe_danger_max', 'dash_pressure_base'),
    'ops': ('combo_top_k', 'combo_max_pairs', 'random_effect_samples'),
    'utility': ('w_loot', 'w_risk', 'w_team', 'w_deny'),
}


def resolve_config_path(config_path: Optional[str] = None) -> Path:
    """Explicit path, then the environment variable, then the packaged default."""
    chosen = config_path or os.environ.get(CONFIG_ENV_VAR)
    return Path(chosen) if chosen else DEFAULT_CONFIG_PATH


def _merge_sections(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for section, values in overrides.items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            merged[section].update(copy.deepcopy(values))
        else:
            merged[section] = copy.deepcopy(values)
    return merged


class StrategyConfig:
    """
    Named-section tuning values for one bot.

    Loading never raises. A missing or unreadable file leaves the config
    empty and is_loaded False, and every lookup then returns the caller's
    fallback.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.path: Optional[Path] = resolve_config_path(config_path)
        self._data: Dict[str, Any] = {}
        self._loaded = False
        self.reload()

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base: Optional['StrategyConfig'] = None) -> 'StrategyConfig':
        """
        Build a config in memory, for tests and presets.

        Sections of `base` are copied first; `data` then overrides them
        key by key, so a preset only lists what it changes.
        """
        config = cls.__new__(cls)
        config.path = None
        config._data = _merge_sections(base.as_dict() if base else {}, data)
        config._loaded = True
        return config

    def reload(self):
        """Re-read the file this config came from. In-memory configs are left as is."""
        if self.path is None:
            return
        data = self._read(self.path)
        self._data = data or {}
        self._loaded = data is not None
        if self._loaded:
            logger.info(f"⚙️  Strategy config '{self.name}' v{self.version} from {self.path}")
            self._check_sections()
            self._log_watched()

    @staticmethod
    def _read(path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            logger.warning(f"⚠️  Strategy config {path} not found, using built-in defaults")
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"❌ Strategy config {path} is not valid JSON: {e}")
            return None
        except OSError as e:
            logger.error(f"❌ Could not read strategy config {path}: {e}")
            return None
        if not isinstance(data, dict):
            logger.error(f"❌ Strategy config {path} must hold a JSON object")
            return None
        return data

    def _check_sections(self):
        for section in SECTIONS:
            if section in self._data and not isinstance(self._data[section], dict):
                logger.warning(f"⚠️  Config section '{section}' is not an object, ignoring it")
                del self._data[section]

    def _log_watched(self):
        for section, keys in _WATCHED_KEYS.items():
            values = self.get_section(section)
            shown = ", ".join(f"{k}={values.get(k)}" for k in keys)
            logger.debug(f"  [{section}] {shown}")

    @property
    def name(self) -> str:
        return self._data.get('name', 'default')

    @property
    def version(self) -> str:
        return self._data.get('version', '0.0.0')

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """
        Look up one tuning value.

        Args:
            section: One of SECTIONS, e.g. 'decision'
            key: Name within the section, e.g. 'safe_danger_max'
            default: Returned when the section or key is absent

        Returns:
            The configured value, or default
        """
        return self.get_section(section).get(key, default)

    def get_weight(self, key: str, default: float = 0.0) -> float:
        """A shared utility weight as a float."""
        return float(self.get('utility', key, default))

    def get_section(self, section: str) -> Dict[str, Any]:
        """The section's dict, or {} when it is absent."""
        return self._data.get(section, {})

    def as_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)


_config: Optional[StrategyConfig] = None


def get_config() -> StrategyConfig:
    """The process-wide config, loaded on first use."""
    global _config
    if _config is None:
        _config = StrategyConfig()
    return _config


def set_config_path(path: str):
    """Replace the process-wide config with one loaded from `path`."""
    global _config
    _config = StrategyConfig(path)


def reload_config():
    """Re-read the process-wide config from disk, if one is loaded."""
    if _config is not None:
        _config.reload()
