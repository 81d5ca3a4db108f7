"""Rollout bucketing."""

from __future__ import annotations

import hashlib
import secrets

from .policy import RolloutStrategy

BUCKETS = 100


def stable_bucket(user_id: str) -> int:
    digest = hashlib.sha256(user_id.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") % BUCKETS


def random_bucket() -> int:
    return secrets.randbelow(BUCKETS)


def bucket_for(strategy: RolloutStrategy, user_id: str) -> int:
    """Place a login in [0, 100).

    The stable strategy depends on the user id alone, so the same user lands
    in the same bucket in every process. The random one draws per call.
    """
    if strategy == RolloutStrategy.RANDOM:
        return random_bucket()
    return stable_bucket(user_id)
