from plumb import EvalCase
from plumb.assertions import common_structural, matches

case = EvalCase(
    prompt_file="skills/worktree/SKILL.md",
    description="Worktree skill creates isolated development environments",
    structural=[
        *common_structural(),
        matches("mentions-idempotent", r"idempoten", case_sensitive=False),
        matches("mentions-error-handling", r"error", case_sensitive=False),
    ],
)
