"""Command-line interface for the plumb eval harness.

Usage:
    plumb                                   Structural checks for evals/cases
    plumb --mode all                        Structural and behavioral checks
    plumb --mode behavioral -f debug        Behavioral checks for units matching "debug"
    plumb --root plugin --cases plugin/evals/cases --dry-run
"""

from pathlib import Path

import click
import dotenv
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import EvalConfig
from .errors import CaseLoadError, MissingCredentialError
from .monitoring import enable_monitoring
from .registry import load_cases
from .report import print_summary
from .runner import run_evals

dotenv.load_dotenv()

MODES = ["structural", "behavioral", "llm", "all"]


def _print_plan(console: Console, config: EvalConfig) -> None:
    """Print the cases a run would execute, without reading prompts or calling a model."""
    cases = load_cases(config.cases_dir, config.filter)
    if not cases:
        console.print("[dim]No eval cases found[/dim]")
        return

    table = Table(title="Test Plan", box=box.ROUNDED, show_header=True, header_style="bold blue")
    table.add_column("Prompt", style="cyan", no_wrap=True)
    table.add_column("Description", style="dim")
    table.add_column("Structural", justify="right")
    table.add_column("Behavioral", justify="right")
    table.add_column("Found", justify="center")

    for case in cases:
        exists = (Path(config.prompts_root) / case.prompt_file).is_file()
        table.add_row(
            case.prompt_file,
            case.description,
            str(len(case.structural)) if config.mode.runs_structural else "[dim]-[/dim]",
            str(len(case.behavioral)) if config.mode.runs_behavioral else "[dim]-[/dim]",
            "[green]yes[/green]" if exists else "[red]missing[/red]",
        )

    total = sum(case.assertion_count for case in cases)
    console.print()
    console.print(table)
    console.print()
    console.print(
        Panel(
            f"[cyan]{len(cases)}[/cyan] cases, [blue]{total}[/blue] assertions, mode [bold]{config.mode.value}[/bold]",
            title="Dry Run",
            border_style="green",
        )
    )


@click.command()
@click.option(
    "--mode",
    "-m",
    type=click.Choice(MODES, case_sensitive=False),
    default="structural",
    show_default=True,
    help="Which checks to run (llm is an alias of behavioral)",
)
@click.option("--filter", "-f", "filter_", help="Only case units whose filename contains this text")
@click.option("--model", help="Model id for behavioral evals (e.g. anthropic:claude-sonnet-4-5)")
@click.option("--max-rpm", type=float, help="Maximum model requests per minute")
@click.option("--max-spend", type=float, help="Stop issuing model requests once this many USD are spent")
@click.option(
    "--require-key",
    is_flag=True,
    help="Fail instead of falling back to structural checks when no API key is set",
)
@click.option("--fail-on-empty", is_flag=True, help="Exit non-zero when no cases are found")
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory prompt files are relative to",
)
@click.option(
    "--cases",
    "cases_dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory of case units",
)
@click.option(
    "--results",
    "results_dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory the JSON report is written to",
)
@click.option("--dry-run", is_flag=True, help="Show test plan without running")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output")
@click.option("--no-color", is_flag=True, help="Disable colors")
@click.option("--debug", is_flag=True, help="Re-raise errors with a traceback")
def main(
    mode: str,
    filter_: str | None,
    model: str | None,
    max_rpm: float | None,
    max_spend: float | None,
    require_key: bool,
    fail_on_empty: bool,
    root: Path | None,
    cases_dir: Path | None,
    results_dir: Path | None,
    dry_run: bool,
    quiet: bool,
    no_color: bool,
    debug: bool,
):
    """plumb: structural and behavioral evals for prompt files."""
    console = (
        Console(force_terminal=False, no_color=True, quiet=quiet)
        if no_color
        else Console(quiet=quiet)
    )

    try:
        config = EvalConfig.from_env(
            mode=mode,
            filter=filter_,
            model=model,
            max_requests_per_minute=max_rpm,
            max_spend_per_run=max_spend,
            skip_llm_on_missing_key=False if require_key else None,
            fail_on_empty=fail_on_empty or None,
            prompts_root=root,
            cases_dir=cases_dir,
            results_dir=results_dir,
        )
    except ValidationError as e:
        click.secho(f"ERROR: Invalid configuration:\n{e}", fg="red", err=True)
        raise SystemExit(1) from None

    enable_monitoring()

    console.print()
    console.print("[bold]=== Prompt Eval Harness ===[/bold]")
    console.print(f"Mode: {config.mode.value}")
    if config.filter:
        console.print(f"Filter: {config.filter}")
    console.print()

    try:
        if dry_run:
            _print_plan(console, config)
            return
        outcome = run_evals(config, console=console)
    except (CaseLoadError, MissingCredentialError) as e:
        click.secho(f"ERROR: {e}", fg="red", err=True)
        if debug:
            raise
        raise SystemExit(1) from None

    report = outcome.report
    if not report.is_empty:
        print_summary(report, console)

    if outcome.report_path:
        console.print(f"\nReport saved to: [green]{outcome.report_path}[/green]\n")

    if outcome.exit_code:
        if report.failed:
            click.secho(
                f"ERROR: {report.failed} assertion(s) failed!", fg="red", bold=True, err=True
            )
        raise SystemExit(outcome.exit_code)


if __name__ == "__main__":
    main()
