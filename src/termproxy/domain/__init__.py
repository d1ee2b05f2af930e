"""Domain models for termproxy.

This package contains the core data structures, enumerations and the
error taxonomy used throughout the system. All models use Pydantic v2
for validation and serialization.
"""

from termproxy.domain.models import (
    SessionInfo,
    SessionState,
    TargetDescriptor,
    TargetValidation,
)

__all__ = [
    "SessionInfo",
    "SessionState",
    "TargetDescriptor",
    "TargetValidation",
]
