"""
Run orchestration: the per-case state machine, and the RunEvals fluent API.
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple, Union

import click
import logfire
from rich.console import Console

from .client import AgentModelClient, ModelClient
from .config import EvalConfig
from .errors import MissingCredentialError
from .eval_types import EvalCase, EvalMode, EvalReport, EvalResult, count_outcomes
from .limits import Pricing, RateLimiter, Sleep, SpendGuard
from .phases import run_behavioral_assertions, run_structural_assertions
from .registry import load_cases
from .report import build_report, write_report


@dataclass
class RunState:
    """Mutable accumulator threaded through the case loop."""

    guard: SpendGuard
    results: List[EvalResult] = field(default_factory=list)
    skipped: int = 0
    warnings: List[str] = field(default_factory=list)


@dataclass
class RunOutcome:
    report: EvalReport
    report_path: Optional[Path] = None
    fail_on_empty: bool = False

    @property
    def exit_code(self) -> int:
        if self.report.failed > 0:
            return 1
        if self.report.is_empty and self.fail_on_empty:
            return 1
        return 0


def _warn(state: RunState, message: str) -> None:
    state.warnings.append(message)
    logfire.warn(message)
    click.secho(f"WARNING: {message}", fg="yellow", err=True)


def read_prompt(root: Union[str, Path], prompt_file: str) -> str:
    path = Path(root) / prompt_file
    if not path.is_file():
        raise FileNotFoundError(f"Prompt file not found: {path}")
    return path.read_text(encoding="utf-8")


def resolve_client(
    config: EvalConfig,
    mode: EvalMode,
    client: Optional[ModelClient],
    state: RunState,
) -> Tuple[EvalMode, Optional[ModelClient]]:
    """Decide the effective mode and the model client for this run.

    Structural runs never get a client. Behavioral runs without a credential
    degrade to structural-only, or raise when ``skip_llm_on_missing_key`` is off.
    """
    if not mode.runs_behavioral:
        return mode, None
    if client is not None:
        return mode, client
    if config.has_credentials():
        return mode, AgentModelClient(config.model)

    message = f"{config.credential_env_var} not set. Skipping behavioral evals."
    if not config.skip_llm_on_missing_key:
        raise MissingCredentialError(
            f"{config.credential_env_var} is required for behavioral evals with model {config.model!r}"
        )
    _warn(state, message)
    return EvalMode.STRUCTURAL, None


async def evaluate_cases(
    cases: Sequence[EvalCase],
    config: EvalConfig,
    *,
    mode: EvalMode,
    client: Optional[ModelClient],
    state: RunState,
    console: Console,
    sleep: Optional[Sleep] = None,
) -> RunState:
    """Run every case in order: load, structural phase, behavioral phase."""
    limiter = RateLimiter(config.max_requests_per_minute, sleep=sleep)
    pricing = Pricing(config.input_cost_per_mtok, config.output_cost_per_mtok)

    for case in cases:
        console.print(f"Testing: [cyan]{case.prompt_file}[/cyan]")
        console.print(f"  [dim]{case.description}[/dim]")

        with logfire.span("eval case {prompt_file}", prompt_file=case.prompt_file):
            try:
                content = read_prompt(config.prompts_root, case.prompt_file)
            except (OSError, UnicodeDecodeError) as e:
                state.warnings.append(str(e))
                logfire.error("Cannot read prompt file", prompt_file=case.prompt_file, error=str(e))
                click.secho(f"  x Error: {e}", fg="red", err=True)
                console.print()
                continue

            if mode.runs_structural:
                structural = run_structural_assertions(case, content)
                state.results.extend(structural)
                passed, failed = count_outcomes(structural)
                console.print(f"  Structural: {passed} passed, {failed} failed")

            if mode.runs_behavioral and client is not None and case.has_behavioral:
                if state.guard.exhausted:
                    state.skipped += 1
                    click.secho(
                        f"  Spend limit reached (${state.guard.ceiling:.2f}). Skipping behavioral eval.",
                        fg="yellow",
                        err=True,
                    )
                    logfire.warn(
                        "Spend limit reached", prompt_file=case.prompt_file, spent=state.guard.spent
                    )
                    console.print()
                    continue

                await limiter.wait()
                outcome = await run_behavioral_assertions(
                    case,
                    content,
                    client,
                    model=config.model,
                    max_tokens=config.max_tokens,
                    pricing=pricing,
                )
                state.results.extend(outcome.results)
                state.guard.charge(outcome.cost)
                passed, failed = count_outcomes(outcome.results)
                console.print(
                    f"  Behavioral: {passed} passed, {failed} failed (cost: ${outcome.cost:.4f})"
                )

        console.print()

    return state


async def arun_evals(
    config: EvalConfig,
    *,
    cases: Optional[Sequence[EvalCase]] = None,
    client: Optional[ModelClient] = None,
    console: Optional[Console] = None,
    sleep: Optional[Sleep] = None,
    save_report: bool = True,
) -> RunOutcome:
    """Run a full evaluation and return the report (and where it was written).

    Args:
        config: Run configuration.
        cases: Cases to run; loaded from ``config.cases_dir`` when omitted.
        client: Model client; built from ``config.model`` when omitted and needed.
        console: Console for progress output.
        sleep: Replacement for ``asyncio.sleep`` in the rate limiter.
        save_report: Write the JSON report into ``config.results_dir``.

    Raises:
        CaseLoadError: If a case unit fails to load.
        MissingCredentialError: If behavioral evals need a credential that is
            missing and ``skip_llm_on_missing_key`` is off.
    """
    console = console or Console()
    state = RunState(guard=SpendGuard(config.max_spend_per_run))

    if cases is None:
        if not Path(config.cases_dir).is_dir():
            _warn(state, f"Cases directory not found: {config.cases_dir}")
        cases = load_cases(config.cases_dir, config.filter)

    if not cases:
        _warn(state, "No eval cases found.")
    else:
        console.print(f"Loaded {len(cases)} eval case(s)\n")

    mode, client = resolve_client(config, config.mode, client, state)

    with logfire.span("eval run", mode=mode.value, cases=len(cases)):
        await evaluate_cases(
            cases, config, mode=mode, client=client, state=state, console=console, sleep=sleep
        )

    report = build_report(
        mode=mode.value,
        total_cases=len(cases),
        results=state.results,
        skipped=state.skipped,
        estimated_cost=state.guard.spent,
        model=config.model if mode.runs_behavioral else None,
        warnings=state.warnings,
    )
    logfire.info(
        "Eval run finished",
        passed=report.passed,
        failed=report.failed,
        skipped=report.skipped,
        estimated_cost=report.estimated_cost,
    )

    report_path = write_report(report, config.results_dir) if save_report else None
    return RunOutcome(report=report, report_path=report_path, fail_on_empty=config.fail_on_empty)


def run_evals(config: Optional[EvalConfig] = None, **kwargs: Any) -> RunOutcome:
    """Synchronous wrapper around :func:`arun_evals`."""
    return asyncio.run(arun_evals(config or EvalConfig(), **kwargs))


class RunEvals:
    """
    Fluent API for running prompt evaluations.

    Examples:
        RunEvals.from_dir("evals/cases", root=".").run()
        RunEvals.from_dir("evals/cases").filter("debug").mode("all").run()
        RunEvals.from_cases([case]).with_client(client).mode("behavioral").run()
    """

    def __init__(
        self,
        *,
        cases: Optional[Sequence[EvalCase]] = None,
        config: Optional[EvalConfig] = None,
        client: Optional[ModelClient] = None,
    ):
        self._cases = list(cases) if cases is not None else None
        self._overrides: dict[str, Any] = {}
        self._config = config
        self._client = client
        self._console: Optional[Console] = None
        self._sleep: Optional[Sleep] = None
        self._save_report = True

    @classmethod
    def from_dir(
        cls, cases_dir: Union[str, Path], *, root: Optional[Union[str, Path]] = None
    ) -> "RunEvals":
        """
        Create from a directory of case units.

        Args:
            cases_dir: Directory holding ``.py``/``.yml`` case units
            root: Directory prompt files are relative to

        Returns:
            RunEvals instance
        """
        runner = cls()
        runner._overrides["cases_dir"] = Path(cases_dir)
        if root is not None:
            runner._overrides["prompts_root"] = Path(root)
        return runner

    @classmethod
    def from_cases(
        cls, cases: Sequence[EvalCase], *, root: Optional[Union[str, Path]] = None
    ) -> "RunEvals":
        """Create from EvalCase objects built in code."""
        runner = cls(cases=cases)
        if root is not None:
            runner._overrides["prompts_root"] = Path(root)
        return runner

    @classmethod
    def from_config(cls, config: EvalConfig) -> "RunEvals":
        return cls(config=config)

    def filter(self, substring: str) -> "RunEvals":
        """Only load case units whose filename contains ``substring``."""
        self._overrides["filter"] = substring
        return self

    def mode(self, mode: Union[str, EvalMode]) -> "RunEvals":
        self._overrides["mode"] = EvalMode.parse(mode)
        return self

    def model(self, model: str) -> "RunEvals":
        self._overrides["model"] = model
        return self

    def with_client(self, client: ModelClient) -> "RunEvals":
        self._client = client
        return self

    def limits(
        self,
        *,
        max_requests_per_minute: Optional[float] = None,
        max_spend_per_run: Optional[float] = None,
    ) -> "RunEvals":
        if max_requests_per_minute is not None:
            self._overrides["max_requests_per_minute"] = max_requests_per_minute
        if max_spend_per_run is not None:
            self._overrides["max_spend_per_run"] = max_spend_per_run
        return self

    def results_dir(self, path: Union[str, Path]) -> "RunEvals":
        self._overrides["results_dir"] = Path(path)
        return self

    def without_report(self) -> "RunEvals":
        """Skip writing the JSON report."""
        self._save_report = False
        return self

    def quiet(self, enabled: bool = True) -> "RunEvals":
        self._console = Console(quiet=enabled)
        return self

    def with_sleep(self, sleep: Sleep) -> "RunEvals":
        """Replace the rate limiter's sleep (useful in tests)."""
        self._sleep = sleep
        return self

    def build_config(self) -> EvalConfig:
        if self._config is None:
            return EvalConfig.from_env(**self._overrides)
        return self._config.model_copy(update=self._overrides)

    async def arun(self) -> RunOutcome:
        return await arun_evals(
            self.build_config(),
            cases=self._cases,
            client=self._client,
            console=self._console,
            sleep=self._sleep,
            save_report=self._save_report,
        )

    def run(self) -> RunOutcome:
        """
        Execute the evaluations.

        Returns:
            RunOutcome with the report, the report path and the exit code

        Example:
            outcome = RunEvals.from_dir("evals/cases").run()
            print(f"Passed: {outcome.report.all_passed}")
        """
        return asyncio.run(self.arun())
