"""
Agent Configuration
===================

Centralized configuration for the convergence loop, specialists and
synthesizer. Values can be overridden from environment variables
(loaded from a .env file via python-dotenv).
"""

import os
import logging
from dataclasses import dataclass, field, fields, replace
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "x-ai/grok-4.1-fast"


class ConfigurationError(Exception):
    """Raised when configuration is invalid or credentials are missing."""
    pass


class InvalidConfigError(ConfigurationError):
    """A setting is out of range or unparsable."""
    pass


@dataclass
class AgentConfig:
    """
    Configuration for a convergence run.

    Example:
        >>> config = AgentConfig(quality_threshold=8.5, max_rounds=3)
        >>> config.validate()
    """
    # Quality gate
    quality_threshold: float = 9.0
    max_rounds: int = 4

    # Early stopping (plateau_epsilon=0.0 stops only on strict regression)
    early_stopping: bool = True
    plateau_epsilon: float = 0.0

    # Timeouts (seconds)
    run_timeout: float = 300.0
    specialist_timeout: float = 120.0
    request_timeout: float = 300.0

    # Models
    specialist_model: str = DEFAULT_MODEL
    synthesis_model: str = DEFAULT_MODEL

    # Sampling
    specialist_temperature: float = 0.7
    distill_temperature: float = 0.2
    adapt_temperature: float = 0.3
    integrate_temperature: float = 0.4
    specialist_max_tokens: int = 8192
    synthesis_max_tokens: int = 50000

    # Retry policy at the model client boundary
    retry_max_attempts: int = 3
    retry_base_delay: float = 2.0
    retry_max_delay: float = 30.0

    # LLM repair pass for malformed specialist output
    enable_technician: bool = False

    # Readiness penalties used by the aggregate quality score
    critical_penalty: float = 2.5
    warning_penalty: float = 0.75
    suggestion_penalty: float = 0.1

    api_key: Optional[str] = field(default=None, repr=False)

    def validate(self):
        """
        Check value ranges.

        Raises:
            InvalidConfigError: If any value is out of range
        """
        # 0 is excluded: a failed round must be able to score below the threshold
        if not 0.0 < self.quality_threshold <= 10.0:
            raise InvalidConfigError(
                f"quality_threshold must be in (0, 10], got {self.quality_threshold}"
            )
        if self.max_rounds < 1:
            raise InvalidConfigError(f"max_rounds must be >= 1, got {self.max_rounds}")
        if self.plateau_epsilon < 0:
            raise InvalidConfigError(f"plateau_epsilon must be >= 0, got {self.plateau_epsilon}")
        for name in ("run_timeout", "specialist_timeout", "request_timeout"):
            if getattr(self, name) <= 0:
                raise InvalidConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if self.retry_max_attempts < 1:
            raise InvalidConfigError(
                f"retry_max_attempts must be >= 1, got {self.retry_max_attempts}"
            )
        if self.retry_base_delay < 0 or self.retry_max_delay < 0:
            raise InvalidConfigError("retry delays must be non-negative")
        for name in ("specialist_max_tokens", "synthesis_max_tokens"):
            if getattr(self, name) < 1:
                raise InvalidConfigError(f"{name} must be >= 1, got {getattr(self, name)}")
        for name in ("critical_penalty", "warning_penalty", "suggestion_penalty"):
            if getattr(self, name) < 0:
                raise InvalidConfigError(f"{name} must be non-negative")
        return self

    def with_overrides(self, **overrides) -> "AgentConfig":
        """Return a copy with the given non-None fields replaced."""
        clean = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **clean)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "AgentConfig":
        """
        Build configuration from CODEMIND_* environment variables.

        Example:
            CODEMIND_QUALITY_THRESHOLD=8.5
            CODEMIND_MAX_ROUNDS=3
            CODEMIND_SPECIALIST_MODEL=openai/gpt-4o-mini
        """
        load_dotenv(dotenv_path)

        values = {}
        for f in fields(cls):
            if f.name == "api_key":
                continue
            raw = os.getenv(f"CODEMIND_{f.name.upper()}")
            if raw is None:
                continue
            try:
                if f.type in (bool, "bool"):
                    values[f.name] = raw.strip().lower() in ("1", "true", "yes", "on")
                elif f.type in (int, "int"):
                    values[f.name] = int(raw)
                elif f.type in (float, "float"):
                    values[f.name] = float(raw)
                else:
                    values[f.name] = raw
            except ValueError as e:
                raise InvalidConfigError(f"Invalid value for CODEMIND_{f.name.upper()}: {raw!r}") from e

        values["api_key"] = os.getenv("OPENROUTER_API_KEY")
        config = cls(**values)
        logger.info(f"⚙️ [Config] Loaded from environment ({len(values) - 1} overrides)")
        return config.validate()


# Preset configurations
FAST_CONFIG = AgentConfig(
    quality_threshold=8.0,
    max_rounds=2,
    run_timeout=120.0,
    specialist_timeout=45.0,
    request_timeout=60.0,
    retry_max_attempts=2,
)

ROBUST_CONFIG = AgentConfig(
    max_rounds=6,
    run_timeout=600.0,
    specialist_timeout=180.0,
    retry_max_attempts=5,
    enable_technician=True,
)
