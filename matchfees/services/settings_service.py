"""
Settings service providing global default rates from the system_config table.

Values are cached for a fixed time-to-live; a failed reload keeps serving
the previous values.
"""
import logging
import time
from typing import Callable, Dict, Mapping, Optional

from ..utils.constants import (
    DEFAULT_SETTINGS, LATE_FEE_RATE_KEY, LEGACY_SETTING_KEYS,
    SETTINGS_CACHE_TTL_SECONDS, VIDEO_FEE_RATE_KEY
)
from .exceptions import NotFoundError

logger = logging.getLogger(__name__)

SettingsLoader = Callable[[], Mapping[str, str]]

_MISSING = object()


def database_settings_loader(persistence_service) -> SettingsLoader:
    """Build a loader reading key/value rows through a PersistenceService."""
    return persistence_service.load_settings


class SettingsService:
    """
    Cached key/value settings with built-in defaults.

    Attributes:
        ttl_seconds: How long a loaded snapshot is served before reloading
    """

    def __init__(
        self,
        loader: Optional[SettingsLoader] = None,
        ttl_seconds: float = SETTINGS_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        self._loader = loader
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: Dict[str, str] = {}
        self._loaded_at: Optional[float] = None

    def get_setting(self, key: str, default=_MISSING) -> str:
        """
        Get a setting value as stored.

        Args:
            key: Setting key; legacy lowercase keys are accepted
            default: Returned when the key is neither stored nor built in

        Raises:
            NotFoundError: If the key is unknown and no default was given
        """
        key = LEGACY_SETTING_KEYS.get(key, key)
        settings = self._settings()
        if key in settings:
            return settings[key]
        if key in DEFAULT_SETTINGS:
            return DEFAULT_SETTINGS[key]
        if default is not _MISSING:
            return default
        raise NotFoundError(f"Setting '{key}' not found")

    def get_float(self, key: str) -> float:
        """Get a numeric setting, falling back to its built-in default if unparsable."""
        value = self.get_setting(key)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning("Setting %s has non-numeric value %r; using default", key, value)
            return float(DEFAULT_SETTINGS[key]) if key in DEFAULT_SETTINGS else 0.0

    def get_video_fee_rate(self) -> float:
        return self.get_float(VIDEO_FEE_RATE_KEY)

    def get_late_fee_rate(self) -> float:
        return self.get_float(LATE_FEE_RATE_KEY)

    def get_base_fee_rates(self) -> Dict[str, float]:
        """Both default rates, keyed videoFeeRate and lateFeeRate."""
        return {
            "videoFeeRate": self.get_video_fee_rate(),
            "lateFeeRate": self.get_late_fee_rate(),
        }

    def clear_cache(self) -> None:
        """Force the next lookup to reload."""
        self._cache = {}
        self._loaded_at = None

    def _settings(self) -> Dict[str, str]:
        now = self._clock()
        if self._loaded_at is not None and now - self._loaded_at < self.ttl_seconds:
            return self._cache
        if self._loader is None:
            self._loaded_at = now
            return self._cache

        try:
            loaded = self._loader()
        except Exception:
            logger.exception("Failed to load settings; keeping %d cached values", len(self._cache))
            self._loaded_at = now
            return self._cache

        # canonical keys win over their legacy aliases
        cache = {
            LEGACY_SETTING_KEYS[key]: str(value)
            for key, value in loaded.items() if key in LEGACY_SETTING_KEYS
        }
        cache.update({
            key: str(value) for key, value in loaded.items() if key not in LEGACY_SETTING_KEYS
        })
        self._cache = cache
        self._loaded_at = now
        logger.debug("Loaded %d settings", len(self._cache))
        return self._cache
