"""Transfer destination as a tagged union.

A transfer moves money out of an account into either another account or a
savings goal. The destination is resolved once, at the start of a transfer,
into one of the two variants below; downstream code dispatches on the type.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias

from .errors import DomainRuleError

__all__ = ["AccountTarget", "GoalTarget", "TransferTarget", "ensure_not_self_transfer"]


@dataclass(slots=True, frozen=True)
class AccountTarget:
    account_id: str
    kind: str = "account"


@dataclass(slots=True, frozen=True)
class GoalTarget:
    goal_id: str
    kind: str = "goal"


TransferTarget: TypeAlias = AccountTarget | GoalTarget


def ensure_not_self_transfer(source_account_id: str, target: TransferTarget) -> None:
    if isinstance(target, AccountTarget) and target.account_id == source_account_id:
        raise DomainRuleError("Source and destination accounts must differ")
