"""Tests for label-based exclusion."""

import sys
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from deliverymetrics.labels import should_exclude_by_labels


def test_should_exclude_when_any_label_matches():
    """Verify a single matching label excludes the item."""
    assert should_exclude_by_labels(["bug", "wontfix"], ["wontfix", "duplicate"])


def test_should_not_exclude_without_match():
    """Verify unrelated labels do not exclude the item."""
    assert not should_exclude_by_labels(["bug"], ["wontfix"])
    assert not should_exclude_by_labels([], ["wontfix"])


def test_empty_exclusion_list_never_excludes():
    """Verify no configured labels means nothing is excluded."""
    assert not should_exclude_by_labels(["wontfix"], [])


def test_label_matching_is_exact():
    """Verify label names are compared exactly."""
    assert not should_exclude_by_labels(["WontFix"], ["wontfix"])
