"""Property-based tests for version parsing and compatibility."""

import pytest
from hypothesis import given, strategies as st

from dbbench.engines.versions import (
    PARSE_FAILURE_WARNING,
    compare_versions,
    is_version_compatible,
    parse_version,
)
from dbbench.models.schemas import EngineKind

engine_kinds = st.sampled_from(list(EngineKind))
dotted_versions = st.lists(st.integers(min_value=0, max_value=999), min_size=1, max_size=4).map(
    lambda parts: ".".join(str(p) for p in parts)
)
any_versions = st.one_of(dotted_versions, st.text(max_size=20))


@pytest.mark.property
@given(engine_kinds, st.text(max_size=30))
def test_parse_never_raises(engine, raw):
    """Property: parsing arbitrary text returns a version or None."""
    parsed = parse_version(engine, raw)
    if parsed is not None:
        assert all(isinstance(c, int) and c >= 0 for c in parsed.components)


@pytest.mark.property
@given(engine_kinds, dotted_versions)
def test_parse_accepts_leading_v_and_whitespace(engine, raw):
    """Property: decoration around a version does not change the result."""
    assert parse_version(engine, f"  v{raw} ") == parse_version(engine, raw)


@pytest.mark.property
@given(engine_kinds, any_versions, any_versions)
def test_compare_is_antisymmetric(engine, a, b):
    """Property: swapping arguments negates the comparison."""
    forward = compare_versions(engine, a, b)
    backward = compare_versions(engine, b, a)
    if forward is None:
        assert backward is None
    else:
        assert forward == -backward


@pytest.mark.property
@given(engine_kinds, dotted_versions)
def test_compare_is_reflexive(engine, version):
    """Property: a parseable version equals itself."""
    if parse_version(engine, version) is not None:
        assert compare_versions(engine, version, version) == 0


@pytest.mark.property
@given(engine_kinds, any_versions, any_versions)
def test_compatibility_is_total(engine, source, target):
    """Property: compatibility always returns a verdict, and unparseable input is allowed."""
    verdict = is_version_compatible(engine, source, target)

    if parse_version(engine, source) is None or parse_version(engine, target) is None:
        assert verdict.compatible
        assert verdict.warning == PARSE_FAILURE_WARNING
    if not verdict.compatible:
        assert verdict.warning


@pytest.mark.property
@given(engine_kinds, dotted_versions)
def test_same_version_is_compatible_without_warning(engine, version):
    """Property: restoring into the same version never warns."""
    if parse_version(engine, version) is not None:
        verdict = is_version_compatible(engine, version, version)
        assert verdict.compatible
        assert verdict.warning is None
