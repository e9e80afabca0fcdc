"""
plumb - an eval harness for prompt files: structural checks on the prompt text,
behavioral checks on model output.
"""
import importlib.metadata

__version__ = importlib.metadata.version("plumb")

from .assertions import common_structural, excludes, matches, shared_assertion
from .client import AgentModelClient, ModelClient, ModelReply
from .config import EvalConfig
from .errors import CaseLoadError, MissingCredentialError, ModelClientError
from .eval_types import (
    Assertion,
    BehavioralAssertion,
    EvalCase,
    EvalMode,
    EvalReport,
    EvalResult,
    StructuralAssertion,
)
from .registry import load_case_unit, load_cases
from .runner import RunEvals, RunOutcome, arun_evals, run_evals

__all__ = [
    "Assertion",
    "StructuralAssertion",
    "BehavioralAssertion",
    "EvalCase",
    "EvalMode",
    "EvalResult",
    "EvalReport",
    "EvalConfig",
    "ModelClient",
    "ModelReply",
    "AgentModelClient",
    "CaseLoadError",
    "MissingCredentialError",
    "ModelClientError",
    "common_structural",
    "shared_assertion",
    "matches",
    "excludes",
    "load_cases",
    "load_case_unit",
    "RunEvals",
    "RunOutcome",
    "run_evals",
    "arun_evals",
]
