"""Helpers for running named provisioning steps against a ProvisionState."""
from enum import Enum
from typing import Callable, Optional

from pveprov.core.errors import CommandError, ProvisionError, StepError
from pveprov.core.logger import get_logger
from pveprov.models.state import ProvisionState, StepStatus

logger = get_logger(__name__)


def run_step(state: ProvisionState, step: Enum, action: Callable[[], Optional[str]]) -> None:
    """Run a required step; record it on success, raise StepError on failure.

    Host command failures, provisioning errors and local file errors
    (OSError) are wrapped with the step name and the state so far.
    """
    logger.info(f"→ {step.value}")
    try:
        detail = action()
    except (CommandError, ProvisionError, OSError) as e:
        logger.error(f"✗ {step.value} failed: {e}")
        raise StepError(step.value, e, state) from e
    state.record(step, detail=detail or "")


def best_effort(state: ProvisionState, step: Enum, action: Callable[[], Optional[str]]) -> None:
    """Run an optional step; a failed command is logged and recorded as degraded."""
    logger.info(f"→ {step.value}")
    try:
        detail = action()
    except CommandError as e:
        logger.warning(f"{step.value} failed, continuing (best effort): {e}")
        state.record(step, StepStatus.DEGRADED, str(e))
        return
    state.record(step, detail=detail or "")


def skip_step(state: ProvisionState, step: Enum, reason: str) -> None:
    logger.info(f"- {step.value} skipped: {reason}")
    state.record(step, StepStatus.SKIPPED, reason)
