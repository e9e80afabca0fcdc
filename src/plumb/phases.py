"""The two evaluation phases run for each case.

* structural: assertions over the raw prompt text, synchronous and pure
* behavioral: one model request per case, assertions over the model output
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Literal

import logfire

from .client import ModelClient
from .eval_types import EvalCase, EvalResult, SupportsEvaluate
from .limits import Pricing

REQUEST_SEPARATOR = "\n\n---\n\n"
DEFAULT_TEST_INPUT = "Test input"


@dataclass
class BehavioralOutcome:
    results: List[EvalResult] = field(default_factory=list)
    cost: float = 0.0


def _evaluate(
    case: EvalCase,
    assertions: Iterable[SupportsEvaluate],
    text: str,
    mode: Literal["structural", "behavioral"],
) -> List[EvalResult]:
    results = []
    for assertion in assertions:
        try:
            passed = bool(assertion.evaluate(text))
            details = None if passed else "Assertion failed"
        except Exception as e:
            passed = False
            details = f"Error: {e}"
        results.append(
            EvalResult(
                prompt_file=case.prompt_file,
                description=case.description,
                mode=mode,
                assertion=assertion.name,
                passed=passed,
                details=details,
            )
        )
    return results


def run_structural_assertions(case: EvalCase, content: str) -> List[EvalResult]:
    """Evaluate every structural assertion of ``case`` against the prompt content.

    An assertion that raises is recorded as a failed result with the exception
    message; it never aborts its siblings.
    """
    return _evaluate(case, case.structural, content, "structural")


def build_request(case: EvalCase, content: str) -> str:
    return f"{content}{REQUEST_SEPARATOR}{case.test_input or DEFAULT_TEST_INPUT}"


async def run_behavioral_assertions(
    case: EvalCase,
    content: str,
    client: ModelClient,
    *,
    model: Any,
    max_tokens: int,
    pricing: Pricing = Pricing(),
) -> BehavioralOutcome:
    """Request model output for ``case`` once and evaluate its behavioral assertions.

    Args:
        case: Case with at least one behavioral assertion.
        content: Prompt file content.
        client: Model client.
        model: Model id passed to the client.
        max_tokens: Output token limit passed to the client.
        pricing: Per-million-token rates used to estimate the cost.

    Returns:
        BehavioralOutcome with one result per behavioral assertion and the
        estimated cost of the request (0 when the request failed).
    """
    if not case.behavioral:
        return BehavioralOutcome()

    try:
        reply = await client.request(build_request(case, content), model, max_tokens)
    except Exception as e:
        logfire.warn("Behavioral request failed", prompt_file=case.prompt_file, error=str(e))
        return BehavioralOutcome(
            results=[
                EvalResult(
                    prompt_file=case.prompt_file,
                    description=case.description,
                    mode="behavioral",
                    assertion=assertion.name,
                    passed=False,
                    details=f"API Error: {e}",
                )
                for assertion in case.behavioral
            ]
        )

    cost = pricing.cost(reply.input_tokens, reply.output_tokens)
    logfire.info(
        "Behavioral request completed",
        prompt_file=case.prompt_file,
        input_tokens=reply.input_tokens,
        output_tokens=reply.output_tokens,
        cost=cost,
    )
    return BehavioralOutcome(
        results=_evaluate(case, case.behavioral, reply.text, "behavioral"),
        cost=cost,
    )
