"""Report assembly, the per-run JSON artifact, and console summaries."""

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Union

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .eval_types import EvalReport, EvalResult, count_outcomes


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. ``2026-01-02T03:04:05.678Z``."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_report(
    *,
    mode: str,
    total_cases: int,
    results: Sequence[EvalResult],
    skipped: int = 0,
    estimated_cost: float = 0.0,
    model: Optional[str] = None,
    warnings: Sequence[str] = (),
    timestamp: Optional[str] = None,
) -> EvalReport:
    """Build the run report; the counts are always derived from ``results``."""
    passed, failed = count_outcomes(results)
    return EvalReport(
        timestamp=timestamp or utc_timestamp(),
        mode=mode,
        model=model,
        total_cases=total_cases,
        total_assertions=len(results),
        passed=passed,
        failed=failed,
        skipped=skipped,
        estimated_cost=estimated_cost,
        warnings=list(warnings),
        results=list(results),
    )


def report_filename(timestamp: str, attempt: int = 0) -> str:
    stamp = timestamp.replace(":", "-").replace(".", "-")
    suffix = f"-{attempt}" if attempt else ""
    return f"eval-{stamp}{suffix}.json"


def write_report(report: EvalReport, results_dir: Union[str, Path]) -> Path:
    """Write ``report`` as JSON into ``results_dir`` and return the path.

    Files are created exclusively; when a file with the same timestamp already
    exists a numeric suffix is appended, so no run overwrites another.
    """
    results_dir = Path(results_dir)
    results_dir.mkdir(parents=True, exist_ok=True)
    payload = report.model_dump_json(by_alias=True, indent=2)

    attempt = 0
    while True:
        path = results_dir / report_filename(report.timestamp, attempt)
        try:
            with open(path, "x", encoding="utf-8") as f:
                f.write(payload)
            return path
        except FileExistsError:
            attempt += 1


def load_report(path: Union[str, Path]) -> EvalReport:
    return EvalReport.model_validate_json(Path(path).read_text(encoding="utf-8"))


def _phase_counts(results: List[EvalResult]) -> str:
    if not results:
        return "[grey50]-[/grey50]"
    passed, failed = count_outcomes(results)
    failed_str = f"[bright_red]{failed}[/bright_red]" if failed else "0"
    return f"[green]{passed}[/green] / {failed_str}"


def print_summary(report: EvalReport, console: Optional[Console] = None) -> None:
    """Print per-prompt results, failed assertions and the overall summary panel."""
    console = console or Console()

    if report.results:
        table = Table(
            title="Prompt Results",
            box=box.ROUNDED,
            show_header=True,
            header_style="bold white",
            expand=True,
        )
        table.add_column("Prompt", style="white bold", no_wrap=True)
        table.add_column("Structural (pass / fail)", justify="center")
        table.add_column("Behavioral (pass / fail)", justify="center")
        table.add_column("Status", justify="center")

        by_prompt: dict[str, List[EvalResult]] = {}
        for result in report.results:
            by_prompt.setdefault(result.prompt_file, []).append(result)

        for prompt_file, results in by_prompt.items():
            structural = [r for r in results if r.mode == "structural"]
            behavioral = [r for r in results if r.mode == "behavioral"]
            status = (
                "[green]PASS[/green]"
                if all(r.passed for r in results)
                else "[bright_red]FAIL[/bright_red]"
            )
            table.add_row(prompt_file, _phase_counts(structural), _phase_counts(behavioral), status)

        console.print()
        console.print(table)

    if report.failed_results:
        console.print()
        lines = []
        for result in report.failed_results:
            lines.append(
                f"[red]x[/red] {result.prompt_file} [grey50]({result.mode})[/grey50] {result.assertion}"
            )
            if result.details:
                lines.append(f"    [dim]{result.details}[/dim]")
        console.print(Panel("\n".join(lines), title="Failed Assertions", border_style="yellow"))

    rate = report.passed / report.total_assertions * 100 if report.total_assertions else 100
    rate_style = "green" if rate == 100 else "yellow" if rate >= 50 else "red"

    grid = Table.grid(padding=(0, 3))
    grid.add_column(style="bold white")
    grid.add_column()
    grid.add_row("Mode", report.mode)
    grid.add_row("Total Cases", str(report.total_cases))
    grid.add_row("Total Assertions", str(report.total_assertions))
    grid.add_row("Passed", f"[green]{report.passed}[/green]")
    grid.add_row("Failed", f"[bright_red]{report.failed}[/bright_red]" if report.failed else "0")
    grid.add_row("Skipped", f"[yellow]{report.skipped}[/yellow]" if report.skipped else "0")
    grid.add_row("Pass Rate", f"[{rate_style}]{rate:.1f}%[/{rate_style}]")
    if report.estimated_cost > 0:
        grid.add_row("Estimated Cost", f"${report.estimated_cost:.4f}")

    console.print()
    console.print(Panel(grid, title="Overall Summary", border_style="bright_cyan"))
