"""
Runtime settings, read from a .env file and the process environment.
"""
import os
from typing import Dict, Mapping, Optional
from dotenv import dotenv_values
from pydantic import BaseModel, ValidationError, field_validator
from ..errors import ProvisionError

ENV_PREFIX = "DPROV_"

class Settings(BaseModel):
    """
    Provisioner settings.

    Every field can be set through a ``DPROV_<FIELD>`` variable, e.g.
    ``DPROV_RETRIES=3``.
    """
    engine: str = "auto"
    retries: int = 0
    retry_wait: float = 2.0
    step_timeout: Optional[float] = None
    preflight: bool = False
    keep_intermediate: bool = False

    @field_validator("retries")
    @classmethod
    def _check_retries(cls, value: int) -> int:
        if value < 0:
            raise ValueError("retries must be >= 0")
        return value

    @field_validator("step_timeout", mode="before")
    @classmethod
    def _empty_timeout(cls, value):
        if value in ("", None):
            return None
        return value

    @classmethod
    def load(cls, env_file: Optional[str] = ".env",
             environ: Optional[Mapping[str, str]] = None,
             **overrides) -> "Settings":
        """
        Builds settings from ``env_file`` overlaid by the environment.

        :param env_file: Path to a dotenv file; skipped when missing.
        :param environ: Environment mapping (defaults to ``os.environ``).
        :param overrides: Explicit values, e.g. from command line options; None values are ignored.
        """
        values: Dict[str, str] = {}
        if env_file and os.path.isfile(env_file):
            values.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
        values.update(environ if environ is not None else os.environ)

        data = {}
        for name in cls.model_fields:
            key = ENV_PREFIX + name.upper()
            if key in values:
                data[name] = values[key]
        data.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls(**data)
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(p) for p in error["loc"])
            raise ProvisionError(f"invalid setting {field}: {error['msg']}", step="config") from e
