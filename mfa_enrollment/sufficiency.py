"""Minimum-MFA computation."""

from __future__ import annotations

from typing import AbstractSet, Sequence

from .models import MfaMethod
from .policy import EnrollmentPolicy


def meets_minimum(
    policy: EnrollmentPolicy,
    enabled_methods: Sequence[MfaMethod],
    configured: AbstractSet[str],
) -> bool:
    """Check both thresholds.

    Every configured id counts toward the overall minimum, including ids that
    are not in the enabled catalog. Only enabled ones count toward the
    from-list minimum, which is ignored when it is zero or negative.
    """
    if len(configured) < policy.min_required_overall:
        return False
    if policy.min_required_from_enabled <= 0:
        return True
    enabled_ids = {method.id for method in enabled_methods}
    return len(configured & enabled_ids) >= policy.min_required_from_enabled
