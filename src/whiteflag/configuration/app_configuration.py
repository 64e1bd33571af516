from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict
import yaml

from whiteflag.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()

DEFAULT_RULES_TEXT = (
    "**🏳️ White Flag Rules**\n"
    "• Do not raid tribes with an active white flag.\n"
    "• A white flag applies for the approved duration only.\n"
    "• Any abuse may result in removal and punishment.\n"
    "• Staff decision is final.\n"
)


# Longest grant any setting may produce
MAX_GRANT_HOURS = 168


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class WhiteflagSettings:
    """Typed view over the ``whiteflag`` section of the application config.

    Unknown or malformed values fall back to their defaults so a broken
    config file can never stop the lifecycle engine from running.
    """

    def __init__(self, raw: Dict[str, Any] | None = None) -> None:
        self._raw: Dict[str, Any] = dict(raw or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._raw.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._raw)

    @property
    def duration_hours(self) -> int:
        return min(MAX_GRANT_HOURS, max(1, _as_int(self._raw.get("duration_hours"), MAX_GRANT_HOURS)))

    @property
    def custom_duration_enabled(self) -> bool:
        return bool(self._raw.get("custom_duration_enabled", False))

    @property
    def min_duration_hours(self) -> int:
        return min(MAX_GRANT_HOURS, max(1, _as_int(self._raw.get("min_duration_hours"), 1)))

    @property
    def max_duration_hours(self) -> int:
        hours = _as_int(self._raw.get("max_duration_hours"), MAX_GRANT_HOURS)
        return min(MAX_GRANT_HOURS, max(self.min_duration_hours, hours))

    @property
    def sweep_interval_seconds(self) -> float:
        try:
            return max(5.0, float(self._raw.get("sweep_interval_seconds", 60.0)))
        except (TypeError, ValueError):
            return 60.0

    @property
    def history_retention_days(self) -> int:
        return max(0, _as_int(self._raw.get("history_retention_days"), 30))

    @property
    def entity_name_min_length(self) -> int:
        return max(1, _as_int(self._raw.get("entity_name_min_length"), 2))

    @property
    def entity_name_max_length(self) -> int:
        return max(self.entity_name_min_length, _as_int(self._raw.get("entity_name_max_length"), 64))

    @property
    def notes_max_length(self) -> int:
        return max(0, _as_int(self._raw.get("notes_max_length"), 500))


class AppConfig:
    """Cached view of ``config/app_config.yml``.

    The file is read under an fcntl shared lock so an editor saving it at the
    same moment cannot hand over a truncated document. Any read failure
    leaves an empty mapping and every shortcut falls back to its default.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    def _read_locked(self) -> Any:
        with self.config_path.open("r", encoding="utf-8") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_SH)
            try:
                return yaml.safe_load(handle)
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def load_from_disk(self) -> Dict[str, Any]:
        """Parse the YAML file, returning ``{}`` when it is missing or unusable."""
        try:
            parsed = self._read_locked()
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] No config file at %s, using defaults.", self.config_path)
            return {}
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Could not read %s: %s", self.config_path, exc)
            return {}

        if isinstance(parsed, dict):
            return parsed
        if parsed is not None:
            logger.error("[APP CONFIGURATION] Top level of %s must be a mapping, ignoring it.", self.config_path)
        return {}

    def reload(self) -> Dict[str, Any]:
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """The cached mapping itself, not a copy."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name)
        return section if isinstance(section, dict) else {}

    @property
    def data_dir(self) -> Path:
        """Where the JSON collections live (``./data`` unless ``storage.data_dir`` says otherwise)."""
        return Path(str(self._section("storage").get("data_dir") or "./data")).resolve()

    @property
    def whiteflag(self) -> WhiteflagSettings:
        return WhiteflagSettings(self._section("whiteflag"))

    @property
    def rules_text(self) -> str:
        """Text posted by ``/rules``; the built-in rules when unset."""
        value = self._data.get("rules_text")
        return str(value) if value else DEFAULT_RULES_TEXT


app_config = AppConfig(CONFIG_PATH)
