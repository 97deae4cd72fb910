"""
Domain Errors

Architectural Intent:
- Single taxonomy for every failure the orchestrator can classify
- Per-host errors are folded into host state by the rollout controller;
  only configuration-level errors abort a rollout before any host is touched
- Each error carries enough context (host, step) to be recorded as a cause

Severity:
- ConfigurationError / InventoryUnavailableError: fail fast, nothing touched
- ConnectivityError: skip host (full-batch) or abort rollout (serial)
- BackupError: host skipped, never mutated (fail-closed)
- StageError / HealthCheckTimeout: host rolled back
- RollbackFailure: terminal, needs disaster recovery
- RetentionSweepError: logged, retried on the next sweep
"""

from __future__ import annotations
from typing import Optional


class ShipwrightError(Exception):
    """Base class for all orchestrator errors."""

    def __init__(self, message: str, host: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.host = host

    def __str__(self) -> str:
        if self.host:
            return f"[{self.host}] {self.message}"
        return self.message


class ConfigurationError(ShipwrightError):
    pass


class InventoryUnavailableError(ConfigurationError):
    pass


class ConcurrentRolloutError(ShipwrightError):
    pass


class ConnectivityError(ShipwrightError):
    pass


class BackupError(ShipwrightError):
    pass


class StageError(ShipwrightError):
    """A fatal host pipeline step failed. `step` names the failure point."""

    def __init__(self, message: str, host: Optional[str] = None, step: str = "") -> None:
        super().__init__(message, host)
        self.step = step


class StepTimeout(StageError):
    pass


class HealthCheckTimeout(ShipwrightError):
    def __init__(self, message: str, host: Optional[str] = None, attempts: int = 0) -> None:
        super().__init__(message, host)
        self.attempts = attempts


class RollbackFailure(ShipwrightError):
    pass


class RetentionSweepError(ShipwrightError):
    def __init__(
        self, message: str, host: Optional[str] = None, backup_id: str = ""
    ) -> None:
        super().__init__(message, host)
        self.backup_id = backup_id


class InvalidTransitionError(ShipwrightError):
    pass


def describe(error: BaseException) -> str:
    """Short `Type: message` form used when recording a failure cause."""
    return f"{type(error).__name__}: {error}"
