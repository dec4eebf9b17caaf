"""
Condition grammar shared by drama and interview templates.

    Atomic | FlagActive | Threshold | And | Or
"""

from .condition import ALWAYS, And, Atomic, Condition, FlagActive, Or, Threshold, referenced_flags, referenced_predicates

__all__ = [
    "ALWAYS",
    "And",
    "Atomic",
    "Condition",
    "FlagActive",
    "Or",
    "Threshold",
    "referenced_flags",
    "referenced_predicates",
]
