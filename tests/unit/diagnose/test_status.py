from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from preflight.diagnose.status import Status, most_severe, rollup

TERMINAL = [Status.SKIPPED, Status.OK, Status.WARN, Status.FAIL]


@pytest.mark.parametrize(
    ("own", "children", "expected"),
    [
        (Status.FAIL, [Status.OK], Status.FAIL),
        (Status.OK, [Status.WARN, Status.OK], Status.WARN),
        (Status.WARN, [Status.FAIL], Status.FAIL),
        (Status.UNKNOWN, [Status.SKIPPED, Status.SKIPPED], Status.SKIPPED),
        (Status.OK, [Status.SKIPPED, Status.SKIPPED], Status.OK),
        (Status.UNKNOWN, [Status.SKIPPED, Status.OK], Status.OK),
        (Status.SKIPPED, [Status.WARN], Status.WARN),
        (Status.UNKNOWN, [], Status.OK),
    ],
)
def test_rollup_table(own: Status, children: list[Status], expected: Status) -> None:
    assert rollup(own, children) is expected


def test_unresolved_span_that_never_ran_is_skipped() -> None:
    assert rollup(Status.UNKNOWN, [], ran=False) is Status.SKIPPED
    assert rollup(Status.UNKNOWN, [], ran=True) is Status.OK


def test_most_severe_of_nothing_is_unknown() -> None:
    assert most_severe([]) is Status.UNKNOWN
    assert not Status.UNKNOWN.is_terminal
    assert all(status.is_terminal for status in TERMINAL)


@given(
    st.sampled_from(list(Status)),
    st.lists(st.sampled_from(TERMINAL), max_size=8),
    st.booleans(),
)
def test_rollup_is_always_terminal(own: Status, children: list[Status], ran: bool) -> None:
    assert rollup(own, children, ran=ran).is_terminal


@given(st.sampled_from(list(Status)), st.lists(st.sampled_from(TERMINAL), max_size=8))
def test_rollup_never_ranks_below_a_child(own: Status, children: list[Status]) -> None:
    result = rollup(own, children)
    for child in children:
        assert result.rank >= child.rank


@given(st.lists(st.sampled_from(TERMINAL), max_size=8))
def test_own_fail_always_wins(children: list[Status]) -> None:
    assert rollup(Status.FAIL, children) is Status.FAIL


@given(st.lists(st.sampled_from(TERMINAL), min_size=1, max_size=8))
def test_any_failed_child_fails_the_parent(children: list[Status]) -> None:
    if Status.FAIL in children:
        assert rollup(Status.UNKNOWN, children) is Status.FAIL
    else:
        assert rollup(Status.UNKNOWN, children) is not Status.FAIL
