"""Validation of the methods a user picked on the enrollment form."""

from __future__ import annotations

from typing import AbstractSet, Iterable, List, Sequence, Set

from .models import MfaMethod, ValidationResult
from .policy import EnrollmentPolicy, SelectionMode


def filter_requested(
    requested: Iterable[str],
    enabled_ids: AbstractSet[str],
    configured: AbstractSet[str],
) -> List[str]:
    """Keep enabled, not yet configured ids, first occurrence wins."""
    selected: List[str] = []
    seen: Set[str] = set()
    for method_id in requested:
        if method_id in seen or method_id not in enabled_ids or method_id in configured:
            continue
        seen.add(method_id)
        selected.append(method_id)
    return selected


def validate_selection(
    policy: EnrollmentPolicy,
    enabled_methods: Sequence[MfaMethod],
    configured: AbstractSet[str],
    requested: Iterable[str],
    sufficient: bool,
) -> ValidationResult:
    enabled_ids = {method.id for method in enabled_methods}
    selected = filter_requested(requested, enabled_ids, configured)

    if not selected:
        if sufficient and policy.allow_empty_selection_if_sufficient:
            return ValidationResult.ok(selected)
        return ValidationResult.rejected("Select at least one method.")

    mode = policy.selection_mode
    if mode == SelectionMode.EXACTLY_ONE and len(selected) != 1:
        return ValidationResult.rejected("Select exactly one method.")
    if mode == SelectionMode.ALL_UNCONFIGURED:
        unconfigured = enabled_ids - set(configured)
        if len(selected) != len(unconfigured):
            return ValidationResult.rejected("You must select all unconfigured methods.")
    if (
        mode == SelectionMode.UP_TO_MAX
        and policy.max_new_methods_per_submission > 0
        and len(selected) > policy.max_new_methods_per_submission
    ):
        return ValidationResult.rejected(
            f"Select no more than {policy.max_new_methods_per_submission} methods."
        )
    return ValidationResult.ok(selected)
