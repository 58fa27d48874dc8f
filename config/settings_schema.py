"""
Typed Settings Schema (Pydantic)
================================

Provides typed, validated configuration for the evolutionary search.
Every field has a documented default; YAML values override the defaults and
keyword overrides win over both.

Usage:
    from config.settings_schema import load_validated_settings

    settings = load_validated_settings()
    genetic = settings.genetic.with_overrides(population=50, last_best=10)

    # Network topology
    layers = settings.network.layers
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from core.exceptions import SettingsValidationError

logger = logging.getLogger(__name__)

StopStrategy = Literal["threshold", "iterations", "stagnation"]
OrderSeedStrategy = Literal["window", "random_counts", "percent", "evenly_spaced"]


# ============================================================================
# Schema Definitions
# ============================================================================

class GeneticSettings(BaseModel):
    """Population and selection configuration shared by both engines."""
    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    population: int = Field(default=500, ge=1, description="Target population size")
    last_best: int = Field(default=100, ge=1, description="Elite count kept after each sort")
    limit_mutate_sub: int = Field(
        default=100, ge=0,
        description="Weight sub-mutations applied to each network clone"
    )
    new_items: int = Field(
        default=0, ge=0,
        description="Freshly seeded candidates injected per generation"
    )
    max_mutate_iter: int = Field(
        default=1, ge=0,
        description="Index sub-mutations applied to each order clone"
    )
    min_rand_weight: float = Field(default=-100.0, description="Lower bound for mutated weights")
    max_rand_weight: float = Field(default=100.0, description="Upper bound for mutated weights")
    best_result: float = Field(default=0.001, description="Convergence threshold; a loss limit under loss scoring")
    budget: float = Field(default=1000.0, description="Simulated starting budget")
    perc_by_hours: int = Field(
        default=10, ge=0, le=100,
        description="Percent of ticks used as the trade count centre when seeding orders"
    )
    diff_shift: int = Field(
        default=2, ge=0, le=100,
        description="Percent of ticks used as the trade count spread when seeding orders"
    )
    inps: int = Field(default=0, ge=0, description="Total ticks; 0 derives it from the samples")
    hours: float = Field(default=0.0, ge=0, description="Hours covered by the samples")
    trades_by_day: float = Field(default=0.0, ge=0, description="Expected trades per day")
    min_perce: float = Field(default=0.0, description="Minimum percent move for a closing trade")
    stop_strategy: StopStrategy = "threshold"
    max_iterations: int = Field(default=1000, ge=1)
    stagnation_limit: int = Field(default=100, ge=1)
    log_every: int = Field(default=100, ge=1, description="Progress log throttle (generations)")
    max_workers: Optional[int] = Field(default=None, ge=1)
    seed: Optional[int] = None
    single_mutation: bool = Field(
        default=False,
        description="Clone only the best network and apply one mutation per clone"
    )
    order_seed_strategy: OrderSeedStrategy = "window"
    order_mutation: str = "neighbor_replace"

    @model_validator(mode="after")
    def _check_bounds(self) -> "GeneticSettings":
        if self.last_best > self.population:
            raise ValueError(
                f"last_best ({self.last_best}) must not exceed population ({self.population})"
            )
        if self.min_rand_weight > self.max_rand_weight:
            raise ValueError(
                f"min_rand_weight ({self.min_rand_weight}) must not exceed "
                f"max_rand_weight ({self.max_rand_weight})"
            )
        return self

    def with_overrides(self, **fields: Any) -> "GeneticSettings":
        """Return a validated copy with ``fields`` replacing the defaults."""
        return _merge(self, fields)


class NetworkSettings(BaseModel):
    """Topology and training configuration for feed-forward networks."""
    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    layers: int = Field(default=1, ge=0, description="Hidden layer count")
    neurons: int = Field(default=8, ge=1, description="Neurons per hidden layer")
    outputs: Optional[int] = Field(default=None, ge=1, description="Output width; None uses the target width")
    learn_rate: float = Field(default=0.1, ge=0)
    bias: bool = False
    regression: bool = False
    final_activation: bool = True
    weight_min: float = -10.0
    weight_max: float = 10.0
    iterations: int = Field(default=100, ge=0, description="Epochs for full-dataset training")
    log_every: int = Field(default=50, ge=1)

    @model_validator(mode="after")
    def _check_weights(self) -> "NetworkSettings":
        if self.weight_min > self.weight_max:
            raise ValueError(
                f"weight_min ({self.weight_min}) must not exceed weight_max ({self.weight_max})"
            )
        return self

    def with_overrides(self, **fields: Any) -> "NetworkSettings":
        """Return a validated copy with ``fields`` replacing the defaults."""
        return _merge(self, fields)


class Settings(BaseModel):
    """Complete settings schema."""
    model_config = ConfigDict(extra="allow")

    genetic: GeneticSettings = Field(default_factory=GeneticSettings)
    network: NetworkSettings = Field(default_factory=NetworkSettings)


def _merge(model: BaseModel, fields: Dict[str, Any]) -> Any:
    data = model.model_dump()
    data.update(fields)
    try:
        return type(model)(**data)
    except ValidationError as e:
        raise SettingsValidationError(
            f"Invalid override for {type(model).__name__}",
            context={"fields": sorted(fields)},
            cause=e,
        ) from e


# ============================================================================
# Loading
# ============================================================================

def get_config_path() -> Path:
    """Return path to the YAML config file."""
    env_path = os.getenv("NEUROGEN_CONFIG_PATH")
    if env_path:
        return Path(env_path)
    return Path(__file__).parent / "base.yaml"


def _load_yaml_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load raw YAML configuration."""
    path = path or get_config_path()
    if not path.exists():
        logger.warning(f"Config file not found: {path}")
        return {}

    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_validated_settings(path: Optional[Path] = None, **overrides: Any) -> Settings:
    """
    Load and validate settings from YAML.

    Args:
        path: Optional explicit YAML path (defaults to NEUROGEN_CONFIG_PATH
            or config/base.yaml)
        **overrides: Section overrides, e.g. ``genetic={"population": 20}``

    Returns:
        Validated Settings object

    Raises:
        SettingsValidationError: If settings are invalid
    """
    raw = _load_yaml_config(path)
    for section, values in overrides.items():
        merged = dict(raw.get(section) or {})
        merged.update(values)
        raw[section] = merged

    try:
        return Settings(**raw)
    except ValidationError as e:
        logger.error(f"Settings validation failed: {e}")
        raise SettingsValidationError("Settings validation failed", cause=e) from e
