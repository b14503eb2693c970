import re
from typing import Any

from koreo_graph.models import Step

EXPRESSION_PREFIX = "="

STEP_REFERENCE_PATTERN = re.compile(r"\bsteps\.([A-Za-z0-9_-]+)")


def find_references(value: Any) -> set[str]:
    """
    Collect the step labels referenced by expressions anywhere in ``value``.

    Only strings starting with ``=`` are expressions. One expression may
    reference several steps, e.g. ``"=steps.a.value + steps.b.value"``.

    Args:
        value: Any nested combination of dicts, lists, tuples and scalars

    Returns:
        Distinct referenced step labels (empty if none)
    """
    references: set[str] = set()
    _collect(value, references)
    return references


def find_step_references(step: Step) -> set[str]:
    """Step labels referenced by a step's inputs, forEach source and switchOn."""
    references = find_references(step.inputs)
    if step.for_each is not None:
        references |= find_references(step.for_each.item_in)
    if step.ref_switch is not None:
        references |= find_references(step.ref_switch.switch_on)
    return references


def _collect(value: Any, references: set[str]) -> None:
    if isinstance(value, str):
        if value.startswith(EXPRESSION_PREFIX):
            references.update(STEP_REFERENCE_PATTERN.findall(value))
    elif isinstance(value, dict):
        for item in value.values():
            _collect(item, references)
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            _collect(item, references)
