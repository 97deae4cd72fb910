"""
Domain Services Package

Architectural Intent:
- Pure business rules with no I/O: target resolution and retention
"""

from shipwright.domain.services.target_resolver import TargetResolver
from shipwright.domain.services.retention import select_expired

__all__ = ["TargetResolver", "select_expired"]
