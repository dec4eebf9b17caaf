"""
Condition grammar for template gating.

A condition is a small tagged union evaluated by structural recursion:

    Atomic(name)              named predicate from the registry
    FlagActive(flag)          a narrative flag is currently active
    Threshold(metric, ...)    numeric snapshot metric compared to bounds
    And(of) / Or(of)          boolean combinators

JSON content may use a bare string as shorthand: "loss_streak_3plus" is
Atomic("loss_streak_3plus") and "flag:rivalry_scorched_earth" is
FlagActive("rivalry_scorched_earth").
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, BeforeValidator, Field


FLAG_PREFIX = "flag:"


class Atomic(BaseModel):
    """Named predicate looked up in the predicate registry."""
    type: Literal["atomic"] = "atomic"
    name: str


class FlagActive(BaseModel):
    """True while the flag (or a {playerId}/{teamId} pattern) is active."""
    type: Literal["flag_active"] = "flag_active"
    flag: str


class Threshold(BaseModel):
    """
    Compare a snapshot metric against bounds.

    Both bounds are optional; ``below`` is exclusive, ``at_least`` inclusive.
    """
    type: Literal["threshold"] = "threshold"
    metric: str
    below: float | None = None
    at_least: float | None = None


class And(BaseModel):
    type: Literal["and"] = "and"
    of: list["Condition"] = Field(default_factory=list)


class Or(BaseModel):
    type: Literal["or"] = "or"
    of: list["Condition"] = Field(default_factory=list)


def _coerce_condition(value):
    """Expand string shorthand into a node dict."""
    if isinstance(value, str):
        if value.startswith(FLAG_PREFIX):
            return {"type": "flag_active", "flag": value[len(FLAG_PREFIX):]}
        return {"type": "atomic", "name": value}
    return value


Condition = Annotated[
    Union[Atomic, FlagActive, Threshold, And, Or],
    BeforeValidator(_coerce_condition),
]

And.model_rebuild()
Or.model_rebuild()


ALWAYS = Atomic(name="always")


def referenced_flags(condition: Condition) -> list[str]:
    """Flag keys a condition depends on (used for specificity ranking)."""
    if isinstance(condition, FlagActive):
        return [condition.flag]
    if isinstance(condition, (And, Or)):
        keys: list[str] = []
        for child in condition.of:
            keys.extend(referenced_flags(child))
        return keys
    return []


def referenced_predicates(condition: Condition) -> list[str]:
    """Named predicates a condition calls."""
    if isinstance(condition, Atomic):
        return [condition.name]
    if isinstance(condition, (And, Or)):
        names: list[str] = []
        for child in condition.of:
            names.extend(referenced_predicates(child))
        return names
    return []
