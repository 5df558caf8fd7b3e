"""Pattern registry for loading and managing the PII pattern catalog."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Optional

import jsonschema
import yaml

from piishield.exceptions import PatternCompilationError, ValidatorError
from piishield.models import Examples, PIIPattern, Severity
from piishield.validators import get_validator

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).parent
DEFAULT_CATALOG = PACKAGE_DIR / "patterns" / "builtin.yml"
SCHEMA_PATH = PACKAGE_DIR / "schemas" / "pattern-schema.json"


class PatternRegistry:
    """Registry of compiled patterns, served in priority order."""

    def __init__(self) -> None:
        """Initialize empty pattern registry."""
        self.patterns: dict[str, PIIPattern] = {}  # type -> PIIPattern
        self.namespaces: dict[str, list[str]] = {}  # namespace -> [type]
        self._ordered: Optional[tuple[PIIPattern, ...]] = None
        self._version: int = 0

    def add_pattern(self, pattern: PIIPattern, namespace: str = "custom") -> None:
        """Add a pattern to the registry."""
        if pattern.type in self.patterns:
            logger.warning(f"Pattern {pattern.type} already exists, overwriting")

        self.patterns[pattern.type] = pattern

        types = self.namespaces.setdefault(namespace, [])
        if pattern.type not in types:
            types.append(pattern.type)

        self._ordered = None
        self._version += 1

    def get_pattern(self, pattern_type: str) -> Optional[PIIPattern]:
        """Get pattern by type."""
        return self.patterns.get(pattern_type)

    def get_patterns(self) -> tuple[PIIPattern, ...]:
        """Get all patterns, highest priority first, stable on declaration order."""
        if self._ordered is None:
            self._ordered = tuple(merge_patterns(self.patterns.values()))
        return self._ordered

    @property
    def version(self) -> int:
        """Get current registry version (increments on changes)."""
        return self._version

    def __len__(self) -> int:
        """Return number of patterns."""
        return len(self.patterns)

    def __repr__(self) -> str:
        """String representation."""
        return f"PatternRegistry(patterns={len(self.patterns)}, namespaces={list(self.namespaces.keys())})"


def merge_patterns(
    builtin: Iterable[PIIPattern], custom: Iterable[PIIPattern] = ()
) -> list[PIIPattern]:
    """Merge pattern lists and sort by priority descending (stable on ties)."""
    return sorted([*builtin, *custom], key=lambda p: -p.priority)


def load_registry(
    paths: Optional[list[str]] = None,
    validate_schema: bool = True,
    validate_examples: bool = True,
) -> PatternRegistry:
    """
    Load patterns from YAML catalog files into a registry.

    A pattern whose regex fails to compile is skipped with a warning; the
    rest of the catalog still loads.

    Args:
        paths: List of file paths to load. If None, loads the built-in catalog.
        validate_schema: Whether to validate against JSON schema
        validate_examples: Whether to validate examples against patterns

    Returns:
        PatternRegistry with loaded patterns

    Raises:
        ValueError: If schema or example validation fails, or a validator name is unknown
    """
    registry = PatternRegistry()

    if paths is None:
        paths = [str(DEFAULT_CATALOG)]

    for path_str in paths:
        path = Path(path_str)
        if not path.exists():
            logger.warning(f"Pattern file not found: {path}")
            continue

        logger.info(f"Loading patterns from {path}")
        data = _load_yaml_file(path)

        if validate_schema:
            _validate_schema(data)

        namespace = data["namespace"]
        for pattern in _parse_pattern_file(data):
            if validate_examples and pattern.examples:
                _validate_examples(pattern)
            registry.add_pattern(pattern, namespace=namespace)

    logger.info(f"Loaded {len(registry)} patterns from {len(registry.namespaces)} namespaces")
    return registry


@lru_cache(maxsize=1)
def default_registry() -> PatternRegistry:
    """Return the built-in catalog, loaded once per process."""
    return load_registry()


def pattern_from_dict(data: dict[str, Any]) -> PIIPattern:
    """Build an uncompiled pattern from a plain dict (catalog entry or API payload).

    Raises:
        ValueError: If the validator name or severity is unknown
    """
    validator_name = data.get("validator")
    validator = get_validator(validator_name) if validator_name else None

    examples = None
    if "examples" in data:
        examples = Examples(
            match=data["examples"].get("match", []),
            nomatch=data["examples"].get("nomatch", []),
            rejected=data["examples"].get("rejected", []),
        )

    return PIIPattern(
        type=data["type"],
        pattern=data["pattern"],
        priority=int(data["priority"]),
        validator=validator,
        validator_name=validator_name,
        flags=list(data.get("flags", [])),
        severity=Severity(data.get("severity", "medium")),
        description=data.get("description", ""),
        examples=examples,
    )


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load YAML file."""
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def _validate_schema(data: dict[str, Any]) -> None:
    """Validate pattern data against JSON schema."""
    if not SCHEMA_PATH.exists():
        logger.warning("Pattern schema not found, skipping validation")
        return

    with open(SCHEMA_PATH, "r", encoding="utf-8") as f:
        schema = yaml.safe_load(f)

    try:
        jsonschema.validate(data, schema)
    except jsonschema.ValidationError as e:
        raise ValueError(f"Pattern schema validation failed: {e.message}") from e


def _parse_pattern_file(data: dict[str, Any]) -> list[PIIPattern]:
    """Parse pattern file data into compiled patterns, skipping ones that fail to compile."""
    patterns = []

    for pattern_data in data.get("patterns", []):
        pattern = pattern_from_dict(pattern_data)
        try:
            pattern.compile()
        except PatternCompilationError as e:
            logger.warning(f"Skipping pattern {pattern.type}: {e}")
            continue
        patterns.append(pattern)

    return patterns


def _validate_examples(pattern: PIIPattern) -> None:
    """Validate pattern examples match/nomatch/rejected expectations."""
    if not pattern.examples:
        return

    compiled = pattern.compile()
    errors = []

    for example in pattern.examples.match:
        if not compiled.fullmatch(example):
            errors.append(f"Example should match but doesn't: '{example}'")
        elif not _accepts(pattern, example):
            errors.append(f"Example should pass validator but doesn't: '{example}'")

    for example in pattern.examples.nomatch:
        if compiled.fullmatch(example):
            errors.append(f"Example should NOT match but does: '{example}'")

    for example in pattern.examples.rejected:
        if not compiled.fullmatch(example):
            errors.append(f"Rejected example should match but doesn't: '{example}'")
        elif _accepts(pattern, example):
            errors.append(f"Example should be rejected by validator but isn't: '{example}'")

    if errors:
        error_msg = f"Pattern {pattern.type} example validation failed:\n" + "\n".join(errors)
        raise ValueError(error_msg)

    logger.debug(f"Pattern {pattern.type} examples validated successfully")


def _accepts(pattern: PIIPattern, example: str) -> bool:
    try:
        return pattern.accepts(example)
    except ValidatorError:
        return False
