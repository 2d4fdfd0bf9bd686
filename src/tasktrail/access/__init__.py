# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Authorization for reading entity and user activity history."""

from tasktrail.access.membership import MembershipRepository
from tasktrail.access.verifier import (
    AccessDecision,
    AccessStrategy,
    EntityAccessVerifier,
    build_default_verifier,
)

__all__ = [
    "AccessDecision",
    "AccessStrategy",
    "EntityAccessVerifier",
    "MembershipRepository",
    "build_default_verifier",
]
