"""Application settings for MindSketch.

Values come from the store's settings table and may be overridden per
process with ``MINDSKETCH_*`` environment variables::

    MINDSKETCH_LAYOUT_DENSITY=dense
    MINDSKETCH_UNDO_LIMIT=200
    MINDSKETCH_DRAFT_TTL_SECONDS=300
    MINDSKETCH_AUTOSAVE=false
"""

import logging
from typing import Optional, TYPE_CHECKING

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mindsketch.layout import DENSITIES, DEFAULT_DENSITY

if TYPE_CHECKING:
    from mindsketch.database import Database


logger = logging.getLogger(__name__)

SETTINGS_KEY = "app_settings"
ENV_PREFIX = "MINDSKETCH_"


class AppSettings(BaseSettings):
    """Editor-wide preferences."""
    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, env_ignore_empty=True,
                                      extra="ignore")

    layout_density: str = DEFAULT_DENSITY
    undo_limit: Optional[int] = None  # None keeps the whole history
    draft_ttl_seconds: float = 600.0
    autosave: bool = True

    @classmethod
    def settings_customise_sources(cls, settings_cls, init_settings, env_settings,
                                   dotenv_settings, file_secret_settings):
        # Environment beats stored values
        return env_settings, init_settings

    @field_validator("layout_density")
    @classmethod
    def _known_density(cls, value: str) -> str:
        if value not in DENSITIES:
            raise ValueError(f"expected one of {', '.join(DENSITIES)}")
        return value

    @field_validator("undo_limit")
    @classmethod
    def _positive_limit(cls, value: Optional[int]) -> Optional[int]:
        # 0 or less means unbounded
        return value if value is not None and value > 0 else None

    @field_validator("draft_ttl_seconds")
    @classmethod
    def _non_negative_ttl(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    def to_json(self) -> str:
        return self.model_dump_json()


class StoredSettings(AppSettings):
    """Settings read from stored values alone, ignoring the environment."""

    @classmethod
    def settings_customise_sources(cls, settings_cls, init_settings, env_settings,
                                   dotenv_settings, file_secret_settings):
        return (init_settings,)


def _error_fields(exc: ValidationError) -> str:
    return ", ".join(sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]}))


def load_settings(db: Optional["Database"] = None) -> AppSettings:
    """Read stored settings (if a store is given) and apply env overrides.

    Invalid overrides are logged and dropped; invalid stored values fall
    back to the defaults.
    """
    stored = db.get_setting(SETTINGS_KEY) if db is not None else None
    if not isinstance(stored, dict):
        stored = {}

    try:
        base = StoredSettings(**stored)
    except ValidationError as exc:
        logger.warning("Ignoring stored settings, invalid value for %s", _error_fields(exc))
        stored = {}
        base = StoredSettings()

    try:
        return AppSettings(**stored)
    except ValidationError as exc:
        logger.warning("Ignoring %s* overrides, invalid value for %s",
                       ENV_PREFIX, _error_fields(exc))
    return AppSettings.model_construct(**base.model_dump())


def save_settings(db: "Database", settings: AppSettings):
    db.set_setting(SETTINGS_KEY, settings.model_dump())
