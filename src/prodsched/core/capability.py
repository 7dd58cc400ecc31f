from __future__ import annotations

from typing import Protocol

from prodsched.core.models import Machine, Part


class CapabilityPredicate(Protocol):
    def __call__(self, machine: Machine, part: Part | None) -> bool: ...


def all_machines_capable(machine: Machine, part: Part | None) -> bool:
    """Default predicate: every operational machine can produce every part.

    There is no capability matrix in the shop data yet, so this is an explicit
    simplification. Inject MachineTypeCapability or ConstraintCapability for
    fleets where it does not hold.
    """
    return True


class MachineTypeCapability:
    """Part type -> machine type keywords.

    A part type with rules can only go to a machine whose machine_type
    contains one of its keywords (case-insensitive). Part types without rules,
    and requests without a part, accept any machine.
    """

    def __init__(self, rules: dict[str, list[str] | tuple[str, ...] | set[str]]):
        self.rules: dict[str, tuple[str, ...]] = {
            str(part_type): tuple(str(k).lower() for k in keywords) for part_type, keywords in rules.items()
        }

    def __call__(self, machine: Machine, part: Part | None) -> bool:
        if part is None or not part.part_type:
            return True
        keywords = self.rules.get(part.part_type)
        if not keywords:
            return True
        machine_type = (machine.machine_type or "").lower()
        return any(k in machine_type for k in keywords)

    def __repr__(self) -> str:
        return f"MachineTypeCapability({self.rules!r})"


class ConstraintCapability:
    """Check each machine's `constraints` dict against the part attributes.

    Rule forms:
    - scalar: part attribute must be equal
    - set/list/tuple: part attribute must be a member
    - {"min": x, "max": y}: part attribute must fall in range
    Machines without constraints accept anything.
    """

    def __init__(self, *, accept_missing_part: bool = True):
        self.accept_missing_part = accept_missing_part

    def __call__(self, machine: Machine, part: Part | None) -> bool:
        if not machine.constraints:
            return True
        if part is None:
            return self.accept_missing_part
        return check_constraints(machine, part)


def check_constraints(machine: Machine, part: Part) -> bool:
    """Check if a part satisfies all constraints of a machine."""
    for attr, rule_value in machine.constraints.items():
        if not hasattr(part, attr):
            return False

        part_value = getattr(part, attr)

        if isinstance(rule_value, dict) and ("min" in rule_value or "max" in rule_value):
            if part_value is None:
                return False
            min_v = rule_value.get("min")
            max_v = rule_value.get("max")
            if min_v is not None and part_value < min_v:
                return False
            if max_v is not None and part_value > max_v:
                return False
        elif isinstance(rule_value, (set, list, tuple, frozenset)):
            if part_value not in rule_value:
                return False
        elif rule_value != part_value:
            return False

    return True
