"""Run configuration for the eval harness.

Values come from (highest priority first): explicit overrides such as CLI
options, environment variables (a ``.env`` file is loaded first), then the
defaults below.
"""

import os
from pathlib import Path
from typing import Any, Optional

import dotenv
from pydantic import BaseModel, Field, field_validator

from .eval_types import EvalMode

DEFAULT_MODEL = "anthropic:claude-sonnet-4-5"

# Provider prefix of a model id -> environment variable holding its API key.
PROVIDER_KEYS = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "google-gla": "GOOGLE_API_KEY",
    "groq": "GROQ_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "cohere": "CO_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
}

ENV_OVERRIDES = {
    "model": "PLUMB_MODEL",
    "max_tokens": "PLUMB_MAX_TOKENS",
    "max_requests_per_minute": "PLUMB_MAX_RPM",
    "max_spend_per_run": "PLUMB_MAX_SPEND",
    "skip_llm_on_missing_key": "PLUMB_SKIP_LLM_ON_MISSING_KEY",
    "prompts_root": "PLUMB_PROMPTS_ROOT",
    "cases_dir": "PLUMB_CASES_DIR",
    "results_dir": "PLUMB_RESULTS_DIR",
}


class EvalConfig(BaseModel):
    mode: EvalMode = Field(default=EvalMode.STRUCTURAL, description="Which phases to run.")
    filter: Optional[str] = Field(
        default=None, description="Only load case units whose filename contains this substring."
    )

    model: str = Field(default=DEFAULT_MODEL, description="Model id passed to the model client.")
    max_tokens: int = Field(default=4096, gt=0)

    max_requests_per_minute: float = Field(default=10, gt=0)
    max_spend_per_run: float = Field(
        default=5.00, ge=0, description="Spend guard in USD; no new requests once reached."
    )
    skip_llm_on_missing_key: bool = Field(
        default=True,
        description="Warn and run structural-only when no credential is available, instead of failing.",
    )
    fail_on_empty: bool = Field(default=False, description="Treat a run with zero cases as failed.")

    # USD per million tokens
    input_cost_per_mtok: float = Field(default=3.0, ge=0)
    output_cost_per_mtok: float = Field(default=15.0, ge=0)

    prompts_root: Path = Field(default=Path("."))
    cases_dir: Path = Field(default=Path("evals/cases"))
    results_dir: Path = Field(default=Path("evals/results"))

    @field_validator("mode", mode="before")
    @classmethod
    def _parse_mode(cls, value: Any) -> EvalMode:
        return EvalMode.parse(value)

    @field_validator("filter", mode="before")
    @classmethod
    def _blank_filter(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @classmethod
    def from_env(cls, load_env: bool = True, **overrides: Any) -> "EvalConfig":
        """Build a config from environment variables plus explicit overrides.

        ``None`` overrides are ignored so CLI options left unset fall through
        to the environment.
        """
        if load_env:
            dotenv.load_dotenv()

        values: dict[str, Any] = {}
        for field_name, env_var in ENV_OVERRIDES.items():
            raw = os.getenv(env_var)
            if raw is not None and raw != "":
                values[field_name] = raw

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)

    @property
    def credential_env_var(self) -> Optional[str]:
        return credential_env_var(self.model)

    def has_credentials(self) -> bool:
        env_var = self.credential_env_var
        if env_var is None:
            return True
        return bool(os.getenv(env_var))


def credential_env_var(model: str) -> Optional[str]:
    """Environment variable holding the API key for ``model``, if its provider is known."""
    provider, sep, _ = model.partition(":")
    if not sep:
        return None
    return PROVIDER_KEYS.get(provider.strip().lower())
