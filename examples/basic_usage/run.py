"""
Example: Basic Usage
====================

Runs the example plugin's eval cases from Python:
- structural checks only (no API key needed)
- reading the report
- behavioral checks with a model, when an API key is configured

Run: python examples/basic_usage/run.py
"""

from pathlib import Path

from plumb import RunEvals

PLUGIN = Path(__file__).resolve().parent.parent / "plugin"


def main():
    print("=" * 60)
    print("Example: Basic Usage")
    print("=" * 60)

    # --- Structural checks only ---
    print("\n> Running structural evals...")
    outcome = (
        RunEvals.from_dir(PLUGIN / "evals" / "cases", root=PLUGIN)
        .results_dir(PLUGIN / "evals" / "results")
        .run()
    )
    report = outcome.report
    print(f"\n{report.passed}/{report.total_assertions} assertions passed")
    for result in report.failed_results:
        print(f"  x {result.prompt_file}: {result.assertion} ({result.details})")
    print(f"Report: {outcome.report_path}")

    # --- Structural and behavioral checks for one unit ---
    # Falls back to structural-only (with a warning) when ANTHROPIC_API_KEY is not set.
    print("\n> Running all evals for the debug command...")
    outcome = (
        RunEvals.from_dir(PLUGIN / "evals" / "cases", root=PLUGIN)
        .filter("debug")
        .mode("all")
        .limits(max_requests_per_minute=10, max_spend_per_run=0.50)
        .without_report()
        .run()
    )
    print(f"Estimated cost: ${outcome.report.estimated_cost:.4f}")


if __name__ == "__main__":
    main()
