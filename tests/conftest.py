"""Pytest configuration and shared fixtures for plumb tests."""

import textwrap
from pathlib import Path

import pytest
from rich.console import Console

from plumb import EvalCase, EvalConfig, ModelClientError, ModelReply

# ============================================================================
# Prompt Fixtures
# ============================================================================

GOOD_PROMPT = """\
# Debug

## Priorities
1. Correctness
2. Safety
3. Clarity

Form a hypothesis, read the logs and the git history, then find the root cause.
"""

BAD_PROMPT = """\
# Sloppy

## Instructions

IMPORTANT: Do this first.
CRITICAL: And this is critical too.
IMPORTANT: Another important thing right here.

You're a smart cookie!
"""


@pytest.fixture
def prompts_root(tmp_path: Path) -> Path:
    """A prompt tree with one clean and one sloppy prompt."""
    root = tmp_path / "plugin"
    (root / "commands").mkdir(parents=True)
    (root / "commands" / "good.md").write_text(GOOD_PROMPT)
    (root / "commands" / "bad.md").write_text(BAD_PROMPT)
    return root


@pytest.fixture
def results_dir(tmp_path: Path) -> Path:
    return tmp_path / "results"


@pytest.fixture
def make_config(prompts_root: Path, results_dir: Path):
    """Build an EvalConfig rooted at the prompt tree (environment is not read)."""

    def _make(**overrides) -> EvalConfig:
        values = {"prompts_root": prompts_root, "results_dir": results_dir}
        values.update(overrides)
        return EvalConfig(**values)

    return _make


@pytest.fixture
def quiet_console() -> Console:
    return Console(quiet=True)


# ============================================================================
# Case Unit Fixtures
# ============================================================================


@pytest.fixture
def write_unit(tmp_path: Path):
    """Write a case unit file into ``tmp_path / 'cases'`` and return its path."""
    cases_dir = tmp_path / "cases"
    cases_dir.mkdir(exist_ok=True)

    def _write(name: str, source: str) -> Path:
        path = cases_dir / name
        path.write_text(textwrap.dedent(source))
        return path

    return _write


@pytest.fixture
def cases_dir(tmp_path: Path, write_unit) -> Path:
    """A case directory with one single-case unit and one multi-case unit."""
    write_unit(
        "b_single.py",
        """
        from plumb import EvalCase
        from plumb.assertions import common_structural

        case = EvalCase(
            prompt_file="commands/good.md",
            description="single",
            structural=common_structural(),
        )
        """,
    )
    write_unit(
        "a_multi.py",
        """
        from plumb import EvalCase
        from plumb.assertions import matches

        first = EvalCase(
            prompt_file="commands/good.md",
            description="first",
            structural=[matches("has-title", "^# ")],
        )
        second = EvalCase(
            prompt_file="commands/bad.md",
            description="second",
            structural=[matches("has-title", "^# ")],
        )

        cases = [first, second]
        """,
    )
    return tmp_path / "cases"


# ============================================================================
# Model Client Fakes
# ============================================================================


class FakeModelClient:
    """Model client double that records requests and replays canned replies."""

    def __init__(self, replies=None, *, error: Exception | None = None, events: list | None = None):
        self.replies = list(replies or [])
        self.error = error
        self.calls: list[tuple[str, str, int]] = []
        self.events = events if events is not None else []

    async def request(self, prompt: str, model: str, max_tokens: int) -> ModelReply:
        self.calls.append((prompt, model, max_tokens))
        self.events.append(("request", len(self.calls)))
        if self.error is not None:
            raise self.error
        if self.replies:
            return self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        return ModelReply(text_segments=["ok"], input_tokens=10, output_tokens=10)


class RecordingSleep:
    """Stands in for asyncio.sleep; records each delay instead of waiting."""

    def __init__(self, events: list | None = None):
        self.delays: list[float] = []
        self.events = events if events is not None else []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.events.append(("sleep", seconds))


@pytest.fixture
def fake_client() -> FakeModelClient:
    return FakeModelClient()


@pytest.fixture
def failing_client() -> FakeModelClient:
    return FakeModelClient(error=ModelClientError("401 invalid x-api-key"))


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def behavioral_case() -> EvalCase:
    from plumb.assertions import matches

    return EvalCase(
        prompt_file="commands/good.md",
        description="behavioral",
        structural=[matches("has-priorities", "^## Priorities")],
        behavioral=[matches("says-ok", "ok")],
        test_input="Investigate the failing export.",
    )


@pytest.fixture
def make_client():
    """The FakeModelClient class, for tests that need custom replies."""
    return FakeModelClient


@pytest.fixture
def make_sleep():
    return RecordingSleep
