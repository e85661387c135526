"""
Forge configuration.

Cycle size, cycle award and the tier table are read once at startup into an
immutable ForgeConfig, which is passed explicitly to every component. There is
no reload: restart the process to pick up changes.

The file is YAML. JSON files load too, since JSON is a subset of YAML.
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from ..errors import ConfigurationInvalid

logger = logging.getLogger(__name__)


DEFAULT_CONFIG_FILE = "forge.yaml"
CONFIG_ENV_VAR = "FORGE_CONFIG"


class TierThreshold(BaseModel):
    """A named tier and the cumulative CP needed to reach it."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    min_cp: int = Field(ge=0)


class ForgeConfig(BaseModel):
    """Process-wide progression settings. Immutable after load."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    cycle_length: int = Field(
        gt=0,
        validation_alias=AliasChoices("cycle_length", "spark_cycle_size"),
    )
    cp_award_per_cycle: int = Field(ge=0)
    tiers: tuple[TierThreshold, ...]

    @field_validator("tiers")
    @classmethod
    def _ascending_unique_tiers(
        cls, tiers: tuple[TierThreshold, ...]
    ) -> tuple[TierThreshold, ...]:
        if not tiers:
            raise ValueError("tier table must have at least one tier")

        names = [t.name for t in tiers]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate tier names: {', '.join(duplicates)}")

        for lower, higher in zip(tiers, tiers[1:]):
            if higher.min_cp < lower.min_cp:
                raise ValueError(
                    f"tiers must ascend by min_cp: {higher.name} ({higher.min_cp}) "
                    f"follows {lower.name} ({lower.min_cp})"
                )
        return tiers

    @property
    def floor_tier(self) -> str:
        """Tier of a character with no CP."""
        return self.tiers[0].name


def resolve_config_path(path: Path | str | None = None) -> Path:
    """Explicit path, else $FORGE_CONFIG, else forge.yaml in the working dir."""
    if path is not None:
        return Path(path)
    return Path(os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE))


def parse_config(data: object, source: str = "<data>") -> ForgeConfig:
    """Validate raw config data (already parsed from YAML/JSON)."""
    if not isinstance(data, dict):
        raise ConfigurationInvalid(source, "expected a mapping at the top level")

    try:
        return ForgeConfig.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationInvalid(source, problems) from e


def load_config(path: Path | str | None = None) -> ForgeConfig:
    """
    Load and validate the forge configuration.

    Raises:
        ConfigurationInvalid: file missing, unreadable, unparseable, or
            failing validation.
    """
    config_path = resolve_config_path(path)
    source = str(config_path)

    try:
        text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigurationInvalid(source, "file not found") from e
    except OSError as e:
        raise ConfigurationInvalid(source, f"cannot read file: {e}") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationInvalid(source, f"cannot parse: {e}") from e

    config = parse_config(data, source)
    logger.info(
        "Loaded forge config from %s: cycle=%d, award=%d, %d tiers",
        source,
        config.cycle_length,
        config.cp_award_per_cycle,
        len(config.tiers),
    )
    return config
