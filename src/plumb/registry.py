"""Discover and load eval cases from a directory of case-definition units.

A unit is either a Python module or a YAML file:

Python (``debug.py``)::

    from plumb import EvalCase
    from plumb.assertions import common_structural, matches

    case = EvalCase(
        prompt_file="commands/debug.md",
        description="Debug command performs hypothesis-driven investigation",
        structural=[*common_structural(), matches("mentions-root-cause", "root cause", case_sensitive=False)],
    )

    # or several at once:
    # cases = [case_a, case_b]

YAML (``commands.yml``)::

    cases:
      - prompt_file: commands/start.md
        description: Start command reads RUN.md
        structural:
          - common
          - name: mentions-run-md
            pattern: 'RUN\\.md'
            case_sensitive: false

A single case mapping (without the ``cases`` key) is accepted too.
"""

import importlib.util
import re
import sys
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

import logfire
import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from .assertions import common_structural, excludes, matches, shared_assertion
from .errors import CaseLoadError
from .eval_types import EvalCase, SupportsEvaluate

PYTHON_SUFFIXES = (".py",)
YAML_SUFFIXES = (".yml", ".yaml")
CASE_SUFFIXES = PYTHON_SUFFIXES + YAML_SUFFIXES

COMMON_KEYWORD = "common"


class _UnitModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class PatternSpec(_UnitModel):
    name: str
    pattern: Optional[str] = None
    absent: Optional[str] = None
    case_sensitive: bool = True

    @model_validator(mode="after")
    def _one_pattern(self) -> "PatternSpec":
        if (self.pattern is None) == (self.absent is None):
            raise ValueError(f"assertion {self.name!r} needs exactly one of 'pattern' or 'absent'")
        for regex in (self.pattern, self.absent):
            if regex is not None:
                try:
                    re.compile(regex)
                except re.error as e:
                    raise ValueError(f"assertion {self.name!r} has an invalid regex: {e}") from e
        return self

    def build(self) -> SupportsEvaluate:
        if self.pattern is not None:
            return matches(self.name, self.pattern, case_sensitive=self.case_sensitive)
        return excludes(self.name, self.absent or "", case_sensitive=self.case_sensitive)


AssertionSpec = Union[str, PatternSpec]


def _build_assertions(specs: Sequence[AssertionSpec]) -> List[SupportsEvaluate]:
    assertions: List[SupportsEvaluate] = []
    for spec in specs:
        if isinstance(spec, PatternSpec):
            assertions.append(spec.build())
        elif spec == COMMON_KEYWORD:
            assertions.extend(common_structural())
        else:
            assertions.append(shared_assertion(spec))
    return assertions


class CaseSpec(_UnitModel):
    prompt_file: str
    description: str
    structural: List[AssertionSpec] = []
    behavioral: List[AssertionSpec] = []
    test_input: Optional[str] = None

    def to_case(self) -> EvalCase:
        return EvalCase(
            prompt_file=self.prompt_file,
            description=self.description,
            structural=_build_assertions(self.structural),
            behavioral=_build_assertions(self.behavioral),
            test_input=self.test_input,
        )


class CaseUnitSpec(_UnitModel):
    cases: List[CaseSpec]


def discover_case_files(cases_dir: Union[str, Path], filter: Optional[str] = None) -> List[Path]:
    """List case units in ``cases_dir`` in filename order.

    Files starting with ``_`` are helpers and are skipped. When ``filter`` is
    given, only files whose name contains it (plain substring) are kept.
    """
    cases_dir = Path(cases_dir)
    if not cases_dir.is_dir():
        return []

    files = []
    for path in sorted(cases_dir.iterdir(), key=lambda p: p.name):
        if not path.is_file() or path.suffix not in CASE_SUFFIXES:
            continue
        if path.name.startswith("_"):
            continue
        if filter and filter not in path.name:
            continue
        files.append(path)
    return files


def _module_name(path: Path) -> str:
    stem = re.sub(r"\W", "_", path.stem)
    return f"plumb_cases.{stem}"


def _import_unit(path: Path) -> Any:
    module_name = _module_name(path)
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise CaseLoadError(path, "not an importable Python file")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    # lets a unit import helper modules kept next to it (e.g. _shared.py)
    saved_path = list(sys.path)
    sys.path.insert(0, str(path.parent))
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        sys.modules.pop(module_name, None)
        raise CaseLoadError(path, f"{type(e).__name__}: {e}") from e
    finally:
        sys.path[:] = saved_path
    return module


def _collect(path: Path, exported: Any) -> List[EvalCase]:
    if isinstance(exported, EvalCase):
        return [exported]
    if isinstance(exported, (list, tuple)):
        bad = [item for item in exported if not isinstance(item, EvalCase)]
        if bad:
            raise CaseLoadError(path, f"'cases' contains non-EvalCase values: {bad[:3]!r}")
        return list(exported)
    raise CaseLoadError(path, f"expected an EvalCase or a list of EvalCase, got {type(exported).__name__}")


def load_python_unit(path: Union[str, Path]) -> List[EvalCase]:
    path = Path(path)
    module = _import_unit(path)
    has_case = hasattr(module, "case")
    has_cases = hasattr(module, "cases")

    if has_case and has_cases:
        raise CaseLoadError(path, "unit exports both 'case' and 'cases'; export only one")
    if has_case:
        return _collect(path, module.case)
    if has_cases:
        if isinstance(module.cases, EvalCase):
            raise CaseLoadError(path, "'cases' must be a list; use 'case' for a single EvalCase")
        return _collect(path, module.cases)
    raise CaseLoadError(path, "unit exports neither 'case' nor 'cases'")


def load_yaml_unit(path: Union[str, Path]) -> List[EvalCase]:
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise CaseLoadError(path, f"invalid YAML: {e}") from e

    if not isinstance(loaded, dict):
        raise CaseLoadError(path, "expected a mapping with 'cases' or a single case mapping")

    try:
        if "cases" in loaded:
            specs = CaseUnitSpec.model_validate(loaded).cases
        else:
            specs = [CaseSpec.model_validate(loaded)]
        return [spec.to_case() for spec in specs]
    except (ValidationError, ValueError, TypeError, KeyError) as e:
        raise CaseLoadError(path, str(e)) from e


def load_case_unit(path: Union[str, Path]) -> List[EvalCase]:
    """Load every case declared by one unit, in declaration order.

    Raises:
        CaseLoadError: If the unit cannot be imported, parsed or validated.
    """
    path = Path(path)
    if path.suffix in PYTHON_SUFFIXES:
        cases = load_python_unit(path)
    elif path.suffix in YAML_SUFFIXES:
        cases = load_yaml_unit(path)
    else:
        raise CaseLoadError(path, f"unsupported file type {path.suffix!r}")
    logfire.debug("Loaded case unit", path=str(path), cases=len(cases))
    return cases


def load_cases(cases_dir: Union[str, Path], filter: Optional[str] = None) -> List[EvalCase]:
    """Load and flatten all cases from ``cases_dir``.

    A missing directory yields no cases. A unit that fails to load raises
    :class:`CaseLoadError` and stops the whole load.
    """
    cases_dir = Path(cases_dir)
    if not cases_dir.is_dir():
        logfire.warn("Cases directory not found", cases_dir=str(cases_dir))
        return []

    cases: List[EvalCase] = []
    for path in discover_case_files(cases_dir, filter):
        cases.extend(load_case_unit(path))
    return cases
