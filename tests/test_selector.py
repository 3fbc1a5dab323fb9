"""Tests for choosing the representative chain result of an issue."""

import sys
from pathlib import Path

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from deliverymetrics.models import ChainResult, PRChainItem
from deliverymetrics.selector import EMPTY_RESULT, select_best_result


def _item(number: int, base: str = "main") -> PRChainItem:
    return PRChainItem(pr_number=number, base_branch=base, head_branch="feature", merged_at=None)


def test_select_best_result_prefers_earliest_production_merge():
    """Verify the earliest production merge wins regardless of input order."""
    a = ChainResult("2024-01-02T00:00:00Z", (_item(1, "production"),))
    b = ChainResult("2024-01-01T00:00:00Z", (_item(2, "production"),))

    assert select_best_result([a, b]) is b
    assert select_best_result([b, a]) is b


def test_select_best_result_keeps_first_chain_when_none_reached_production():
    """Verify the first non-null result is kept when nothing reached production."""
    a = ChainResult(None, (_item(1),))
    b = ChainResult(None, (_item(2),))

    assert select_best_result([a, b]).pr_chain == (_item(1),)


def test_select_best_result_production_beats_earlier_unfinished_chain():
    """Verify a production result replaces a previously kept non-production result."""
    unfinished = ChainResult(None, (_item(1),))
    finished = ChainResult("2024-01-05T00:00:00Z", (_item(2, "production"),))

    assert select_best_result([unfinished, finished]) is finished


def test_select_best_result_ignores_none_entries():
    """Verify failed trackings are skipped."""
    a = ChainResult(None, (_item(3),))

    assert select_best_result([None, a, None]) is a


def test_select_best_result_compares_instants_not_strings():
    """Verify timestamps with offsets are compared as points in time."""
    later = ChainResult("2024-01-01T10:00:00Z", ())
    earlier = ChainResult("2024-01-01T11:00:00+02:00", ())

    assert select_best_result([later, earlier]) is earlier


def test_select_best_result_empty_input_returns_empty_result():
    """Verify no results yields an empty chain without production merge."""
    assert select_best_result([]) == EMPTY_RESULT
    assert select_best_result([None]) == EMPTY_RESULT
    assert EMPTY_RESULT.production_merged_at is None
    assert EMPTY_RESULT.pr_chain == ()
