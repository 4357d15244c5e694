"""
Rightsizer configuration.

Every option can come from the environment (``RIGHTSIZER_*``) and be
overridden per run by the CLI, the HTTP API or the MCP tool through
``with_overrides``. Values are parsed and range-checked by pydantic, so a
typo such as ``RIGHTSIZER_READ_ONLY=ture`` is rejected instead of being
read as ``False``.
"""

from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

ENV_PREFIX = "RIGHTSIZER_"

CPU_RECOMMENDATION_KEY = "cpu|size.recommendation"
MEM_RECOMMENDATION_KEY = "mem|size.recommendation"


class RightsizeConfig(BaseSettings):
    """Settings for one right-sizing run."""

    # Decision
    tolerance_fraction: float = Field(0.15, ge=0, lt=1)
    buffer_fraction: float = Field(0.15, gt=0, le=1)

    # Scheduling
    max_concurrent_jobs: int = Field(4, ge=1)
    lookback_days: int = Field(5, ge=1)
    max_run_minutes: float = Field(240, gt=0)
    shutdown_timeout_seconds: float = Field(120, gt=0)
    startup_timeout_seconds: float = Field(120, gt=0)
    poll_interval_seconds: float = Field(2.0, gt=0)
    read_only: bool = True

    # Monitoring keys; vROps reports the memory recommendation in KB
    cpu_metric_key: str = CPU_RECOMMENDATION_KEY
    mem_metric_key: str = MEM_RECOMMENDATION_KEY
    memory_recommendation_unit: str = "KB"

    # Grouping
    group_tag_category: str = "RightsizeGroup"
    resize_tag_category: str = "Rightsize"
    resize_tag_name: str = "Enabled"
    report_excluded: bool = False

    # Connections
    vcenter_host: str = ""
    vrops_host: str = ""
    username: str = ""
    password: str = ""
    vrops_auth_source: str = ""
    verify_ssl: bool = True
    request_timeout_seconds: float = Field(30.0, gt=0)

    # Output
    report_path: str = "rightsize_report.csv"
    report_format: Literal["csv", "json"] = "csv"

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        extra="forbid",
        frozen=True,
    )

    def __init__(self, **values: Any):
        try:
            super().__init__(**values)
        except ValidationError as e:
            raise ConfigurationError(_describe(e)) from e

    @field_validator("memory_recommendation_unit")
    @classmethod
    def _known_unit(cls, value: str) -> str:
        value = value.upper()
        if value not in ("KB", "MB"):
            raise ValueError("must be KB or MB")
        return value

    @model_validator(mode="after")
    def _distinct_metric_keys(self) -> "RightsizeConfig":
        if self.cpu_metric_key == self.mem_metric_key:
            raise ValueError("cpu_metric_key and mem_metric_key must differ")
        return self

    @property
    def memory_divisor(self) -> float:
        return 1024.0 if self.memory_recommendation_unit == "KB" else 1.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RightsizeConfig":
        """
        Build a config from RIGHTSIZER_<FIELD> environment variables.

        With no argument the process environment is read through the
        settings source. An explicit mapping is used on its own.
        """
        if environ is None:
            return cls()
        values: Dict[str, str] = {}
        for name in cls.model_fields:
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw:
                values[name] = raw
        return cls._checked(values)

    def with_overrides(self, **overrides) -> "RightsizeConfig":
        """Return a validated copy with every non-None override applied."""
        unknown = set(overrides) - set(type(self).model_fields)
        if unknown:
            raise ConfigurationError(f"Unknown configuration option(s): {sorted(unknown)}")
        values = self.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return type(self)._checked(values)

    def validate(self, require_connections: bool = False) -> "RightsizeConfig":
        """Ranges are enforced on construction; this adds the connection check."""
        if require_connections:
            missing = [
                f"{ENV_PREFIX}{name.upper()} is not set"
                for name in ("vcenter_host", "vrops_host", "username", "password")
                if not getattr(self, name)
            ]
            if missing:
                raise ConfigurationError("; ".join(missing))
        return self

    @classmethod
    def _checked(cls, values: Dict[str, Any]) -> "RightsizeConfig":
        # model_validate skips the settings sources, so only ``values`` count.
        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise ConfigurationError(_describe(e)) from e


def _describe(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        loc = item.get("loc") or ()
        if loc:
            problems.append(f"{ENV_PREFIX}{str(loc[0]).upper()}: {item['msg']}")
        else:
            problems.append(item["msg"])
    return "; ".join(problems)
