"""Core types: assertions, eval cases, results and the run report."""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Literal, Optional, Protocol, Sequence, Tuple, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


@runtime_checkable
class SupportsEvaluate(Protocol):
    """Anything with a ``name`` and an ``evaluate(text) -> bool`` method is an assertion."""

    name: str

    def evaluate(self, text: str) -> bool: ...


@dataclass(frozen=True)
class Assertion:
    """A named predicate over text.

    Used for both structural assertions (run against the prompt file) and
    behavioral assertions (run against model output).
    """

    name: str
    test: Callable[[str], bool]

    def evaluate(self, text: str) -> bool:
        return bool(self.test(text))


StructuralAssertion = Assertion
BehavioralAssertion = Assertion


@dataclass(frozen=True)
class EvalCase:
    """One prompt file bound to its structural and behavioral assertions.

    Args:
        prompt_file: Path of the prompt, relative to the prompts root.
        description: Human-readable description.
        structural: Assertions checked against the prompt file content.
        behavioral: Assertions checked against model output (optional).
        test_input: Input fed to the model after the prompt (optional).
    """

    prompt_file: str
    description: str
    structural: Tuple[SupportsEvaluate, ...] = ()
    behavioral: Tuple[SupportsEvaluate, ...] = ()
    test_input: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "structural", tuple(self.structural or ()))
        object.__setattr__(self, "behavioral", tuple(self.behavioral or ()))
        if not self.structural and not self.behavioral:
            raise ValueError(
                f"Eval case for '{self.prompt_file}' has no structural or behavioral assertions"
            )
        for assertion in (*self.structural, *self.behavioral):
            if not isinstance(assertion, SupportsEvaluate):
                raise TypeError(
                    f"Eval case for '{self.prompt_file}': {assertion!r} does not provide "
                    "'name' and 'evaluate(text)'"
                )

    @property
    def has_behavioral(self) -> bool:
        return bool(self.behavioral)

    @property
    def assertion_count(self) -> int:
        return len(self.structural) + len(self.behavioral)


class EvalMode(str, Enum):
    """Which phases a run executes."""

    STRUCTURAL = "structural"
    BEHAVIORAL = "behavioral"
    ALL = "all"

    @classmethod
    def parse(cls, value: "str | EvalMode") -> "EvalMode":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        if normalized == "llm":
            return cls.BEHAVIORAL
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(
                f"Invalid mode: {value!r}. Use structural, behavioral (llm), or all."
            ) from None

    @property
    def runs_structural(self) -> bool:
        return self in (EvalMode.STRUCTURAL, EvalMode.ALL)

    @property
    def runs_behavioral(self) -> bool:
        return self in (EvalMode.BEHAVIORAL, EvalMode.ALL)


class _ReportModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EvalResult(_ReportModel):
    prompt_file: str
    description: str
    mode: Literal["structural", "behavioral"]
    assertion: str
    passed: bool
    details: Optional[str] = None


class EvalReport(_ReportModel):
    """Aggregate outcome of one run. Serialized with camelCase keys."""

    timestamp: str
    mode: str
    model: Optional[str] = None
    total_cases: int = 0
    total_assertions: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    estimated_cost: float = 0.0
    warnings: List[str] = Field(default_factory=list)
    results: List[EvalResult] = Field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        return self.failed == 0

    @property
    def is_empty(self) -> bool:
        return self.total_cases == 0

    @property
    def failed_results(self) -> List[EvalResult]:
        return [r for r in self.results if not r.passed]

    def results_for(self, mode: str) -> List[EvalResult]:
        return [r for r in self.results if r.mode == mode]


def count_outcomes(results: Sequence[EvalResult]) -> Tuple[int, int]:
    """Return ``(passed, failed)`` for a result sequence."""
    passed = sum(1 for r in results if r.passed)
    return passed, len(results) - passed


__all__ = [
    "Assertion",
    "BehavioralAssertion",
    "EvalCase",
    "EvalMode",
    "EvalReport",
    "EvalResult",
    "StructuralAssertion",
    "SupportsEvaluate",
    "count_outcomes",
]
