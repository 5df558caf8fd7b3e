"""Tests for the pattern catalog and registry."""

import tempfile
from pathlib import Path

import pytest
import yaml

from piishield import load_registry
from piishield.models import PIIPattern, Severity
from piishield.registry import PatternRegistry, merge_patterns


@pytest.fixture
def registry():
    """Load test registry."""
    return load_registry()


def _write_catalog(data):
    f = tempfile.NamedTemporaryFile(mode="w", suffix=".yml", delete=False, encoding="utf-8")
    with f:
        yaml.dump(data, f)
    return f.name


class TestCatalogLoading:
    """Tests for loading the built-in catalog."""

    def test_registry_loads_patterns(self, registry):
        """Test that registry loads patterns successfully."""
        assert len(registry) > 0
        assert "builtin" in registry.namespaces

    def test_expected_types_present(self, registry):
        """Test the catalog carries the core PII types."""
        types = {p.type for p in registry.get_patterns()}
        for expected in [
            "EMAIL",
            "CREDIT_CARD",
            "NI_NUMBER",
            "IBAN",
            "PHONE_UK_MOBILE",
            "PHONE_UK_LANDLINE",
            "POSTCODE_UK",
            "IP_ADDRESS",
            "DATE_OF_BIRTH",
        ]:
            assert expected in types

    def test_priority_order(self, registry):
        """Test patterns are served highest priority first."""
        priorities = [p.priority for p in registry.get_patterns()]
        assert priorities == sorted(priorities, reverse=True)

    def test_ties_keep_declaration_order(self, registry):
        """Test mobile numbers are tried before landlines at the same priority."""
        types = [p.type for p in registry.get_patterns()]
        assert types.index("PHONE_UK_MOBILE") < types.index("PHONE_UK_LANDLINE")

    def test_validators_attached(self, registry):
        """Test validators are resolved by name."""
        card = registry.get_pattern("CREDIT_CARD")
        assert card.validator_name == "luhn"
        assert card.validator is not None
        assert card.severity == Severity.CRITICAL

    def test_patterns_immutable_view(self, registry):
        """Test get_patterns returns a cached tuple."""
        first = registry.get_patterns()
        assert isinstance(first, tuple)
        assert registry.get_patterns() is first


class TestCatalogPatterns:
    """Spot checks of individual catalog regexes."""

    def test_uk_mobile(self, registry):
        """Test UK mobile pattern."""
        pattern = registry.get_pattern("PHONE_UK_MOBILE")
        assert pattern.compiled.fullmatch("07911 123456")
        assert pattern.compiled.fullmatch("+44 7911 123456")
        assert not pattern.compiled.fullmatch("0207 123 4567")

    def test_uk_landline_excludes_mobiles(self, registry):
        """Test the landline pattern never matches an 07 mobile number."""
        pattern = registry.get_pattern("PHONE_UK_LANDLINE")
        assert pattern.compiled.fullmatch("0207 123 4567")
        assert pattern.compiled.fullmatch("01632 960983")
        assert not pattern.compiled.search("07911 123456")

    def test_us_zip_not_inside_digit_groups(self, registry):
        """Test a five-digit group inside a longer number is not a ZIP code."""
        pattern = registry.get_pattern("POSTCODE_US")
        assert pattern.compiled.fullmatch("90210")
        assert pattern.compiled.fullmatch("90210-1234")
        assert not pattern.compiled.search("07911 123456")

    def test_employee_id_needs_digit(self, registry):
        """Test keyword without a digit is not an employee id."""
        pattern = registry.get_pattern("EMPLOYEE_ID")
        assert pattern.compiled.search("Employee ID: AB1234")
        assert not pattern.compiled.search("proof of identity")

    def test_uk_postcode(self, registry):
        """Test UK postcode pattern."""
        pattern = registry.get_pattern("POSTCODE_UK")
        assert pattern.compiled.fullmatch("SW1A 1AA")
        assert not pattern.compiled.fullmatch("2024")


class TestRegistry:
    """Tests for PatternRegistry."""

    def test_add_pattern_bumps_version(self):
        """Test version increments and ordering cache resets."""
        registry = PatternRegistry()
        registry.add_pattern(PIIPattern(type="A", pattern="a", priority=1))
        assert registry.version == 1
        assert [p.type for p in registry.get_patterns()] == ["A"]

        registry.add_pattern(PIIPattern(type="B", pattern="b", priority=5))
        assert registry.version == 2
        assert [p.type for p in registry.get_patterns()] == ["B", "A"]

    def test_merge_patterns_stable(self):
        """Test merged custom patterns follow built-ins on equal priority."""
        builtin = [PIIPattern(type="A", pattern="a", priority=10)]
        custom = [
            PIIPattern(type="C", pattern="c", priority=10),
            PIIPattern(type="D", pattern="d", priority=20),
        ]
        assert [p.type for p in merge_patterns(builtin, custom)] == ["D", "A", "C"]


class TestCatalogFiles:
    """Tests for loading custom catalog files."""

    def test_custom_catalog(self):
        """Test loading a custom YAML catalog."""
        path = _write_catalog(
            {
                "namespace": "acme",
                "patterns": [
                    {
                        "type": "TICKET",
                        "pattern": r"TCK-\d{4}",
                        "priority": 95,
                        "examples": {"match": ["TCK-1234"], "nomatch": ["TCK-12"]},
                    }
                ],
            }
        )
        try:
            registry = load_registry(paths=[path])
            assert len(registry) == 1
            assert registry.get_pattern("TICKET").priority == 95
            assert registry.namespaces == {"acme": ["TICKET"]}
        finally:
            Path(path).unlink()

    def test_invalid_regex_skipped(self):
        """Test that an uncompilable pattern is skipped, not fatal."""
        path = _write_catalog(
            {
                "namespace": "acme",
                "patterns": [
                    {"type": "BROKEN", "pattern": "(unclosed", "priority": 10},
                    {"type": "OK", "pattern": "ok", "priority": 10},
                ],
            }
        )
        try:
            registry = load_registry(paths=[path])
            assert registry.get_pattern("BROKEN") is None
            assert registry.get_pattern("OK") is not None
        finally:
            Path(path).unlink()

    def test_schema_violation(self):
        """Test schema validation rejects a bad type name."""
        path = _write_catalog(
            {
                "namespace": "acme",
                "patterns": [{"type": "lowercase", "pattern": "x", "priority": 1}],
            }
        )
        try:
            with pytest.raises(ValueError, match="schema validation failed"):
                load_registry(paths=[path])
        finally:
            Path(path).unlink()

    def test_failing_example(self):
        """Test that a wrong example fails loading."""
        path = _write_catalog(
            {
                "namespace": "acme",
                "patterns": [
                    {
                        "type": "CARD",
                        "pattern": r"\d{16}",
                        "priority": 1,
                        "validator": "luhn",
                        "examples": {"match": ["1234567812345678"]},
                    }
                ],
            }
        )
        try:
            with pytest.raises(ValueError, match="should pass validator"):
                load_registry(paths=[path])
        finally:
            Path(path).unlink()

    def test_unknown_validator(self):
        """Test unknown validator name fails loading."""
        path = _write_catalog(
            {
                "namespace": "acme",
                "patterns": [{"type": "X", "pattern": "x", "priority": 1, "validator": "nope"}],
            }
        )
        try:
            with pytest.raises(ValueError, match="Unknown validator"):
                load_registry(paths=[path])
        finally:
            Path(path).unlink()

    def test_missing_file_warns(self):
        """Test a missing catalog file is skipped."""
        registry = load_registry(paths=["/nonexistent/catalog.yml"])
        assert len(registry) == 0
