"""
Optimistic mutation helper.

Applies a change to local state first, then issues the remote write, and
restores the exact pre-change state if the write fails.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import BaseModel

from shared_utils.constants import ErrorCode, LogScope
from shared_utils.error_handler import AppException
from shared_utils.logging_utils import get_scoped_logger


class MutationResult(BaseModel):
    """Outcome of an optimistic (or skipped) mutation."""

    success: bool
    applied: bool
    error: Optional[str] = None
    error_code: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls) -> "MutationResult":
        return cls(success=True, applied=True)

    @classmethod
    def skipped(cls, reason: Optional[str]) -> "MutationResult":
        """No-op: nothing changed locally or remotely."""
        return cls(success=True, applied=False, reason=reason)

    @classmethod
    def failed(cls, exc: Exception) -> "MutationResult":
        code = exc.error_code if isinstance(exc, AppException) else ErrorCode.EXTERNAL_SERVICE_ERROR.value
        return cls(success=False, applied=False, error=str(exc), error_code=code)


@dataclass
class RosterCommand:
    """A named local change plus the remote write that makes it durable.

    ``apply`` receives a private copy of the current state and returns the
    new state; ``remote`` performs the store write.
    """

    name: str
    apply: Callable[[Any], Any]
    remote: Callable[[], None]


class OptimisticExecutor:
    """Runs commands against state exposed through a getter/setter pair."""

    def __init__(
        self,
        get_state: Callable[[], Any],
        set_state: Callable[[Any], None],
        on_success: Optional[Callable[[], None]] = None,
        scope: str = LogScope.ROSTER,
    ) -> None:
        self._get_state = get_state
        self._set_state = set_state
        self._on_success = on_success
        self._logger = get_scoped_logger(scope)

    def execute(self, command: RosterCommand, **context: Any) -> MutationResult:
        snapshot = copy.deepcopy(self._get_state())
        self._set_state(command.apply(copy.deepcopy(snapshot)))

        try:
            command.remote()
        except Exception as exc:
            self._set_state(snapshot)
            self._logger.warning(
                f"{command.name}_reverted",
                error_type=type(exc).__name__,
                error=str(exc),
                **context,
            )
            return MutationResult.failed(exc)

        self._logger.info(f"{command.name}_persisted", **context)
        if self._on_success is not None:
            self._on_success()
        return MutationResult.ok()
