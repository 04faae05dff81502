"""
Configuration system for causalprobe.

Every heuristic constant used by the engine (alignment thresholds,
epistemic mixing weights, preset caps, lifecycle cut-offs, Oracle
posterior thresholds) lives here as a named field rather than a literal.

Implements 12-factor config principles:
- Environment variables as primary config source
- Optional JSON/YAML config file for local development

Usage:
    from causalprobe.config import get_config, Config

    # Load from environment (default)
    config = get_config()

    threshold = config.disagreement.same_domain_alignment_threshold

    # Explicit overrides for a single call site
    custom = Config(oracle=OracleSettings(confidence_threshold=0.9))
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from causalprobe.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class EpistemicMix(BaseModel):
    """
    Epistemic-weight recipe for one family of disagreement atoms.

    ``data_grounded`` is ``data_scale`` times the mean evidence weight of
    the two models; the other two components are fixed.
    """

    model_config = ConfigDict(frozen=True)

    data_scale: float = Field(ge=0.0, le=1.0)
    mechanism_grounded: float = Field(ge=0.0, le=1.0)
    assumption_grounded: float = Field(ge=0.0, le=1.0)


class DisagreementSettings(BaseModel):
    """Thresholds and weights used when diffing two models."""

    model_config = ConfigDict(frozen=True)

    same_domain_alignment_threshold: float = Field(
        default=0.90,
        description="Minimum alignment coverage when both models share a domain",
    )
    cross_domain_alignment_threshold: float = Field(
        default=0.95,
        description="Minimum alignment coverage across domains",
    )
    default_evidence_weight: float = Field(
        default=0.55,
        description="Evidence weight used when validation metadata is absent",
    )
    intervention_delta_threshold: float = Field(
        default=0.2,
        description="Effect delta above which an intervention atom is emitted",
    )
    counterfactual_delta_threshold: float = Field(
        default=0.5,
        description="Effect delta at or above which a counterfactual atom is added",
    )
    high_severity_delta: float = Field(
        default=0.75,
        description="Effect delta above which intervention atoms are high severity",
    )
    max_propagation_depth: int = Field(
        default=4,
        description="Maximum hop count for signed effect propagation",
    )
    severity_weights: dict[str, float] = Field(
        default_factory=lambda: {"high": 1.0, "medium": 0.6, "low": 0.3},
        description="Score multiplier per atom severity",
    )
    assumption_mix: EpistemicMix = Field(
        default_factory=lambda: EpistemicMix(
            data_scale=0.35, mechanism_grounded=0.45, assumption_grounded=0.9,
        ),
    )
    confounder_mix: EpistemicMix = Field(
        default_factory=lambda: EpistemicMix(
            data_scale=0.5, mechanism_grounded=0.55, assumption_grounded=0.8,
        ),
    )
    structural_mix: EpistemicMix = Field(
        default_factory=lambda: EpistemicMix(
            data_scale=1.0, mechanism_grounded=0.82, assumption_grounded=0.4,
        ),
        description="Mix for edge, intervention and counterfactual atoms",
    )


class PresetSettings(BaseModel):
    """Caps and vocabularies for stress-test preset generation."""

    model_config = ConfigDict(frozen=True)

    max_presets_per_operation: int = Field(default=8)
    max_verbatim_assumptions: int = Field(default=3)
    max_confounder_templates: int = Field(default=3)
    outcome_score: int = Field(default=50)
    confounder_score: int = Field(default=30)
    treatment_score: int = Field(default=20)
    max_outdegree_score: int = Field(default=10)
    outcome_tokens: tuple[str, ...] = Field(
        default=("performance", "outcome", "failure", "risk", "harm"),
    )
    treatment_tokens: tuple[str, ...] = Field(
        default=("treat", "intervention", "policy", "action", "dose", "control", "input"),
    )


class LifecycleSettings(BaseModel):
    """Cut-offs for the hypothesis lifecycle."""

    model_config = ConfigDict(frozen=True)

    min_falsifier_length: int = Field(
        default=20,
        description="Falsifiers shorter than this force a retraction",
    )
    max_p_value: float = Field(
        default=0.05,
        description="Largest p-value still counted as a passed test",
    )


class OracleSettings(BaseModel):
    """Bayesian posterior and streak settings for Oracle phase detection."""

    model_config = ConfigDict(frozen=True)

    prior_alpha: float = Field(default=1.0, gt=0.0)
    prior_beta: float = Field(default=9.0, gt=0.0)
    qualifying_score: int = Field(default=3)
    confidence_threshold: float = Field(default=0.8)
    activation_threshold: float = Field(default=0.95)
    deactivation_threshold: float = Field(default=0.90)
    streak_threshold: int = Field(
        default=3,
        description="Streak length shown as 'needed' in summaries (display only)",
    )
    max_time_gap_minutes: float = Field(default=10.0)
    history_size: int = Field(default=10)


class Config(BaseModel):
    """
    causalprobe configuration.

    Loaded from environment variables and an optional config file.
    """

    model_config = ConfigDict(frozen=True)

    disagreement: DisagreementSettings = Field(default_factory=DisagreementSettings)
    presets: PresetSettings = Field(default_factory=PresetSettings)
    lifecycle: LifecycleSettings = Field(default_factory=LifecycleSettings)
    oracle: OracleSettings = Field(default_factory=OracleSettings)

    def config_hash(self) -> str:
        """
        Hash of the configuration, recorded alongside reports so a result
        can be tied to the constants that produced it.
        """
        config_json = json.dumps(self.model_dump(), sort_keys=True, default=str)
        return hashlib.sha256(config_json.encode()).hexdigest()[:16]


def _parse_env_float(value: str | None, default: float) -> float:
    """Parse float from environment variable."""
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Could not parse float setting %r, using %s", value, default)
        return default


def _parse_env_int(value: str | None, default: int) -> int:
    """Parse integer from environment variable."""
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Could not parse integer setting %r, using %s", value, default)
        return default


def load_config_from_env() -> Config:
    """
    Load configuration from environment variables.

    Recognised variables:
    - CAUSALPROBE_SAME_DOMAIN_THRESHOLD / CAUSALPROBE_CROSS_DOMAIN_THRESHOLD
    - CAUSALPROBE_DEFAULT_EVIDENCE_WEIGHT
    - CAUSALPROBE_MAX_PROPAGATION_DEPTH
    - CAUSALPROBE_MAX_PRESETS
    - CAUSALPROBE_MIN_FALSIFIER_LENGTH
    - CAUSALPROBE_ORACLE_CONFIDENCE_THRESHOLD
    - CAUSALPROBE_ORACLE_MAX_GAP_MINUTES
    """
    base = Config()
    env = os.environ

    disagreement = base.disagreement.model_copy(update={
        "same_domain_alignment_threshold": _parse_env_float(
            env.get("CAUSALPROBE_SAME_DOMAIN_THRESHOLD"),
            base.disagreement.same_domain_alignment_threshold,
        ),
        "cross_domain_alignment_threshold": _parse_env_float(
            env.get("CAUSALPROBE_CROSS_DOMAIN_THRESHOLD"),
            base.disagreement.cross_domain_alignment_threshold,
        ),
        "default_evidence_weight": _parse_env_float(
            env.get("CAUSALPROBE_DEFAULT_EVIDENCE_WEIGHT"),
            base.disagreement.default_evidence_weight,
        ),
        "max_propagation_depth": _parse_env_int(
            env.get("CAUSALPROBE_MAX_PROPAGATION_DEPTH"),
            base.disagreement.max_propagation_depth,
        ),
    })
    presets = base.presets.model_copy(update={
        "max_presets_per_operation": _parse_env_int(
            env.get("CAUSALPROBE_MAX_PRESETS"),
            base.presets.max_presets_per_operation,
        ),
    })
    lifecycle = base.lifecycle.model_copy(update={
        "min_falsifier_length": _parse_env_int(
            env.get("CAUSALPROBE_MIN_FALSIFIER_LENGTH"),
            base.lifecycle.min_falsifier_length,
        ),
    })
    oracle = base.oracle.model_copy(update={
        "confidence_threshold": _parse_env_float(
            env.get("CAUSALPROBE_ORACLE_CONFIDENCE_THRESHOLD"),
            base.oracle.confidence_threshold,
        ),
        "max_time_gap_minutes": _parse_env_float(
            env.get("CAUSALPROBE_ORACLE_MAX_GAP_MINUTES"),
            base.oracle.max_time_gap_minutes,
        ),
    })

    return Config(
        disagreement=disagreement,
        presets=presets,
        lifecycle=lifecycle,
        oracle=oracle,
    )


def load_config_from_file(path: Path) -> Config:
    """
    Load configuration from a JSON or YAML file.

    Falls back to environment variables when the file does not exist.

    Raises:
        ConfigurationError: If the file exists but cannot be parsed or
            does not describe a valid configuration.
    """
    if not path.exists():
        logger.warning("Config file not found: %s, using environment", path)
        return load_config_from_env()

    try:
        with open(path) as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Failed to read config from {path}: {e}", config_key=str(path),
        ) from e

    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration in {path}: {e}", config_key=str(path),
        ) from e


@lru_cache(maxsize=1)
def get_config() -> Config:
    """
    Get the global configuration instance.

    Loads from:
    1. CAUSALPROBE_CONFIG_FILE environment variable (if set)
    2. Environment variables (default)

    Result is cached for the lifetime of the process.
    """
    config_file = os.environ.get("CAUSALPROBE_CONFIG_FILE")

    if config_file:
        return load_config_from_file(Path(config_file))

    return load_config_from_env()


def reset_config() -> None:
    """Reset the cached configuration (mainly for testing)."""
    get_config.cache_clear()


def describe_config(config: Config) -> dict[str, Any]:
    """Flat view of the active configuration for CLI display."""
    return {
        "config_hash": config.config_hash(),
        **{
            f"{section}.{key}": value
            for section, values in config.model_dump().items()
            for key, value in values.items()
        },
    }
