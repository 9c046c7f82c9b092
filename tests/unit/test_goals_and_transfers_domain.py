from __future__ import annotations

import pytest

from py_household.domain.errors import DomainRuleError, ValidationError
from py_household.domain.goals import GOAL_LABEL_PREFIX, Goal, GoalType, goal_label, parse_goal_type, progress_percent
from py_household.domain.transfers import AccountTarget, GoalTarget, ensure_not_self_transfer


def test_goal_defaults_and_validation():
    goal = Goal(" t ", " Holiday ", 1_000)
    assert (goal.tenant_id, goal.name, goal.goal_type) == ("t", "Holiday", GoalType.OTHER)
    with pytest.raises(ValidationError):
        Goal("t", "Holiday", 0)
    with pytest.raises(ValidationError):
        parse_goal_type("yacht")
    assert parse_goal_type("Vacation") is GoalType.VACATION


def test_progress_and_label():
    assert progress_percent(250, 1_000) == 25.0
    assert progress_percent(1, 3) == 33.33
    assert progress_percent(1_500, 1_000) == 150.0
    assert progress_percent(10, 0) == 0.0
    assert goal_label("House") == f"{GOAL_LABEL_PREFIX}House"


def test_transfer_targets_are_tagged():
    assert AccountTarget("a").kind == "account"
    assert GoalTarget("g").kind == "goal"


def test_self_transfer_rejected_for_accounts_only():
    with pytest.raises(DomainRuleError):
        ensure_not_self_transfer("a1", AccountTarget("a1"))
    ensure_not_self_transfer("a1", AccountTarget("a2"))
    ensure_not_self_transfer("a1", GoalTarget("a1"))
