from plumb import Assertion, EvalCase
from plumb.assertions import common_structural, matches

case = EvalCase(
    prompt_file="commands/debug.md",
    description="Debug command performs hypothesis-driven investigation",
    structural=[
        *common_structural(),
        matches("mentions-hypothesis", r"hypothes", case_sensitive=False),
        matches("mentions-parallel-investigation", r"parallel|concurrent|simultaneous", case_sensitive=False),
        matches("mentions-root-cause", r"root cause", case_sensitive=False),
        Assertion(
            "mentions-logs-and-git",
            lambda content: "log" in content.lower() and "git" in content.lower(),
        ),
    ],
    behavioral=[
        matches("proposes-hypotheses", r"hypothes", case_sensitive=False),
        Assertion("does-not-jump-to-fix", lambda output: not output.lstrip().lower().startswith("fix")),
    ],
    test_input="The nightly export job started timing out after yesterday's deploy.",
)
