"""Tests for run orchestration and the RunEvals fluent API."""

import asyncio
import json
from pathlib import Path
from unittest.mock import patch

import pytest

from plumb import EvalCase, MissingCredentialError, ModelReply, RunEvals, arun_evals, run_evals
from plumb.assertions import common_structural, matches
from plumb.runner import read_prompt


def _behavioral(prompt_file: str = "commands/good.md", name: str = "replies") -> EvalCase:
    return EvalCase(
        prompt_file=prompt_file,
        description=f"behavioral {name}",
        structural=[matches("has-title", "^# ")],
        behavioral=[matches(name, r"\w")],
    )


class TestStructuralRuns:
    """Runs in the default structural mode."""

    def test_loads_and_reports(self, make_config, cases_dir: Path, quiet_console):
        outcome = run_evals(make_config(cases_dir=cases_dir), console=quiet_console)
        report = outcome.report

        assert report.mode == "structural"
        assert report.total_cases == 3
        assert report.total_assertions == 5
        assert report.passed == 5
        assert report.failed == 0
        assert report.skipped == 0
        assert report.model is None
        assert outcome.exit_code == 0
        assert [r.description for r in report.results][:2] == ["first", "second"]

    def test_report_is_written(self, make_config, cases_dir: Path, results_dir: Path, quiet_console):
        outcome = run_evals(make_config(cases_dir=cases_dir), console=quiet_console)

        assert outcome.report_path is not None
        assert outcome.report_path.parent == results_dir
        data = json.loads(outcome.report_path.read_text())
        assert data["totalCases"] == 3
        assert data["totalAssertions"] == len(data["results"])

    def test_failures_set_exit_code(self, make_config, quiet_console):
        case = EvalCase("commands/bad.md", "sloppy", structural=common_structural())
        outcome = run_evals(make_config(), cases=[case], console=quiet_console)

        assert outcome.report.failed == 3
        assert outcome.report.passed + outcome.report.failed == outcome.report.total_assertions
        assert outcome.exit_code == 1

    def test_missing_prompt_file_is_skipped_with_warning(self, make_config, quiet_console):
        cases = [
            EvalCase("commands/missing.md", "missing", structural=common_structural()),
            EvalCase("commands/good.md", "good", structural=common_structural()),
        ]
        outcome = run_evals(make_config(), cases=cases, console=quiet_console)
        report = outcome.report

        assert report.total_cases == 2
        assert {r.prompt_file for r in report.results} == {"commands/good.md"}
        assert any("Prompt file not found" in w for w in report.warnings)
        assert outcome.exit_code == 0

    def test_no_cases(self, make_config, tmp_path: Path, quiet_console):
        outcome = run_evals(make_config(cases_dir=tmp_path / "empty"), console=quiet_console)
        report = outcome.report

        assert report.is_empty
        assert report.total_assertions == 0
        assert "No eval cases found." in report.warnings
        assert any("Cases directory not found" in w for w in report.warnings)
        assert outcome.report_path is not None and outcome.report_path.exists()
        assert outcome.exit_code == 0

    def test_fail_on_empty(self, make_config, quiet_console):
        outcome = run_evals(make_config(fail_on_empty=True), cases=[], console=quiet_console)
        assert outcome.exit_code == 1

    def test_structural_mode_never_builds_a_client(self, make_config, quiet_console):
        with patch("plumb.runner.AgentModelClient") as agent_client:
            outcome = run_evals(
                make_config(mode="structural"), cases=[_behavioral()], console=quiet_console
            )

        agent_client.assert_not_called()
        assert outcome.report.results_for("behavioral") == []

    def test_structural_mode_ignores_an_injected_client(
        self, make_config, fake_client, recording_sleep, quiet_console
    ):
        outcome = run_evals(
            make_config(mode="structural"),
            cases=[_behavioral(), _behavioral("commands/bad.md")],
            client=fake_client,
            sleep=recording_sleep,
            console=quiet_console,
        )

        assert fake_client.calls == []
        assert recording_sleep.delays == []
        assert outcome.report.estimated_cost == 0
        assert outcome.report.model is None
        assert outcome.report.results_for("behavioral") == []

    def test_without_report(self, make_config, results_dir: Path, quiet_console):
        outcome = run_evals(
            make_config(), cases=[_behavioral()], console=quiet_console, save_report=False
        )
        assert outcome.report_path is None
        assert not results_dir.exists()


class TestBehavioralRuns:
    """Runs that issue model requests."""

    def test_behavioral_mode_skips_structural(
        self, make_config, fake_client, recording_sleep, quiet_console
    ):
        outcome = run_evals(
            make_config(mode="behavioral"),
            cases=[_behavioral()],
            client=fake_client,
            sleep=recording_sleep,
            console=quiet_console,
        )
        report = outcome.report

        assert report.mode == "behavioral"
        assert report.results_for("structural") == []
        assert [r.assertion for r in report.results_for("behavioral")] == ["replies"]
        assert report.model == "anthropic:claude-sonnet-4-5"
        assert len(fake_client.calls) == 1

    def test_all_mode_runs_both_phases(
        self, make_config, fake_client, recording_sleep, quiet_console
    ):
        outcome = run_evals(
            make_config(mode="all"),
            cases=[_behavioral()],
            client=fake_client,
            sleep=recording_sleep,
            console=quiet_console,
        )
        assert [r.mode for r in outcome.report.results] == ["structural", "behavioral"]

    def test_structural_only_cases_make_no_requests(
        self, make_config, fake_client, recording_sleep, quiet_console
    ):
        case = EvalCase("commands/good.md", "structural only", structural=common_structural())
        run_evals(
            make_config(mode="all"),
            cases=[case],
            client=fake_client,
            sleep=recording_sleep,
            console=quiet_console,
        )
        assert fake_client.calls == []
        assert recording_sleep.delays == []

    def test_spend_guard_skips_later_cases(
        self, make_config, make_client, recording_sleep, quiet_console
    ):
        client = make_client([ModelReply(["ok"], input_tokens=0, output_tokens=1000)])
        config = make_config(
            mode="behavioral",
            max_spend_per_run=0.01,
            input_cost_per_mtok=0,
            output_cost_per_mtok=20,
        )
        cases = [_behavioral(name=f"case-{i}") for i in range(3)]

        outcome = run_evals(
            config, cases=cases, client=client, sleep=recording_sleep, console=quiet_console
        )
        report = outcome.report

        assert len(client.calls) == 1
        assert report.skipped == 2
        assert report.estimated_cost == pytest.approx(0.02)
        assert report.total_assertions == 1
        assert outcome.exit_code == 0

    def test_zero_spend_ceiling_skips_everything(
        self, make_config, fake_client, recording_sleep, quiet_console
    ):
        outcome = run_evals(
            make_config(mode="behavioral", max_spend_per_run=0),
            cases=[_behavioral(), _behavioral()],
            client=fake_client,
            sleep=recording_sleep,
            console=quiet_console,
        )
        assert fake_client.calls == []
        assert outcome.report.skipped == 2

    def test_requests_are_spaced(self, make_config, make_client, make_sleep, quiet_console):
        events: list = []
        client = make_client(events=events)
        sleep = make_sleep(events=events)

        run_evals(
            make_config(mode="behavioral", max_requests_per_minute=10),
            cases=[_behavioral(), _behavioral("commands/bad.md")],
            client=client,
            sleep=sleep,
            console=quiet_console,
        )

        assert events == [("sleep", 6.0), ("request", 1), ("sleep", 6.0), ("request", 2)]

    def test_api_error_is_recorded_and_run_continues(
        self, make_config, failing_client, recording_sleep, quiet_console
    ):
        outcome = run_evals(
            make_config(mode="all"),
            cases=[_behavioral(), _behavioral("commands/bad.md")],
            client=failing_client,
            sleep=recording_sleep,
            console=quiet_console,
        )
        report = outcome.report

        behavioral = report.results_for("behavioral")
        assert len(behavioral) == 2
        assert all(r.details.startswith("API Error:") for r in behavioral)
        assert report.estimated_cost == 0
        assert outcome.exit_code == 1

    def test_connection_error_does_not_abort_the_run(
        self, make_config, make_client, recording_sleep, quiet_console
    ):
        client = make_client(error=ConnectionError("connection reset"))
        outcome = run_evals(
            make_config(mode="all"),
            cases=[_behavioral(), _behavioral("commands/bad.md")],
            client=client,
            sleep=recording_sleep,
            console=quiet_console,
        )
        report = outcome.report

        assert len(client.calls) == 2
        assert [r.details for r in report.results_for("behavioral")] == [
            "API Error: connection reset",
            "API Error: connection reset",
        ]
        assert outcome.report_path is not None and outcome.report_path.exists()
        assert outcome.exit_code == 1

    def test_cost_is_accumulated(self, make_config, make_client, recording_sleep, quiet_console):
        client = make_client([ModelReply(["ok"], 1000, 1000)])
        outcome = run_evals(
            make_config(mode="behavioral"),
            cases=[_behavioral(), _behavioral()],
            client=client,
            sleep=recording_sleep,
            console=quiet_console,
        )
        # 2 * (1000 * 3/1M + 1000 * 15/1M)
        assert outcome.report.estimated_cost == pytest.approx(0.036)


class TestCredentials:
    """Behavioral runs without an injected client."""

    def test_missing_key_degrades_to_structural(
        self, make_config, monkeypatch, recording_sleep, quiet_console
    ):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with patch("plumb.runner.AgentModelClient") as agent_client:
            outcome = run_evals(
                make_config(mode="all"),
                cases=[_behavioral()],
                sleep=recording_sleep,
                console=quiet_console,
            )

        agent_client.assert_not_called()
        report = outcome.report
        assert report.mode == "structural"
        assert report.model is None
        assert report.results_for("behavioral") == []
        assert report.results_for("structural")
        assert "ANTHROPIC_API_KEY not set. Skipping behavioral evals." in report.warnings

    def test_missing_key_is_fatal_when_required(self, make_config, monkeypatch, quiet_console):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with pytest.raises(MissingCredentialError, match="ANTHROPIC_API_KEY"):
            run_evals(
                make_config(mode="behavioral", skip_llm_on_missing_key=False),
                cases=[_behavioral()],
                console=quiet_console,
            )

    def test_default_client_is_built_from_model(
        self, make_config, make_client, monkeypatch, recording_sleep, quiet_console
    ):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        fake = make_client()
        with patch("plumb.runner.AgentModelClient", return_value=fake) as agent_client:
            outcome = run_evals(
                make_config(mode="behavioral", model="openai:gpt-4o"),
                cases=[_behavioral()],
                sleep=recording_sleep,
                console=quiet_console,
            )

        agent_client.assert_called_once_with("openai:gpt-4o")
        assert fake.calls[0][1] == "openai:gpt-4o"
        assert outcome.report.model == "openai:gpt-4o"


class TestArunEvals:
    def test_async_entry_point(self, make_config, cases_dir: Path, quiet_console):
        outcome = asyncio.run(
            arun_evals(make_config(cases_dir=cases_dir, filter="single"), console=quiet_console)
        )
        assert outcome.report.total_cases == 1


class TestReadPrompt:
    def test_reads_relative_to_root(self, prompts_root: Path):
        assert read_prompt(prompts_root, "commands/good.md").startswith("# Debug")

    def test_missing(self, prompts_root: Path):
        with pytest.raises(FileNotFoundError, match="Prompt file not found"):
            read_prompt(prompts_root, "commands/nope.md")


class TestRunEvals:
    """Tests for the RunEvals fluent API."""

    def test_from_dir(self, cases_dir: Path, prompts_root: Path, results_dir: Path):
        outcome = (
            RunEvals.from_dir(cases_dir, root=prompts_root)
            .results_dir(results_dir)
            .quiet()
            .run()
        )
        assert outcome.report.total_cases == 3
        assert outcome.report_path.parent == results_dir

    def test_from_dir_with_filter(self, cases_dir: Path, prompts_root: Path):
        outcome = (
            RunEvals.from_dir(cases_dir, root=prompts_root)
            .filter("multi")
            .without_report()
            .quiet()
            .run()
        )
        assert [r.description for r in outcome.report.results] == ["first", "second"]
        assert outcome.report_path is None

    def test_from_cases_with_client(self, prompts_root: Path, fake_client, recording_sleep):
        outcome = (
            RunEvals.from_cases([_behavioral()], root=prompts_root)
            .mode("llm")
            .with_client(fake_client)
            .with_sleep(recording_sleep)
            .limits(max_requests_per_minute=60, max_spend_per_run=1.0)
            .without_report()
            .quiet()
            .run()
        )
        assert outcome.report.mode == "behavioral"
        assert recording_sleep.delays == [1.0]
        assert len(fake_client.calls) == 1

    def test_from_config_overrides(self, make_config):
        runner = RunEvals.from_config(make_config(mode="all")).mode("structural").model("groq:llama")
        config = runner.build_config()
        assert config.mode.value == "structural"
        assert config.model == "groq:llama"

    def test_invalid_mode(self):
        with pytest.raises(ValueError, match="Invalid mode"):
            RunEvals.from_cases([]).mode("fast")
