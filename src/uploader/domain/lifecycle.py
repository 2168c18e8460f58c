from __future__ import annotations

from .models import COMPLETED, FAILED, PENDING, PROCESSING, UPLOAD_STATUSES

# Allowed predecessor states for each target state. processing -> processing is
# the retry re-entry; pending -> failed covers jobs the queue refused.
ALLOWED_PREDECESSORS: dict[str, tuple[str, ...]] = {
    PENDING: (),
    PROCESSING: (PENDING, PROCESSING),
    COMPLETED: (PROCESSING,),
    FAILED: (PENDING, PROCESSING),
}

TERMINAL_STATUSES = (COMPLETED, FAILED)
INITIAL_STATUSES = (PENDING, FAILED)


def is_valid_status(status: str) -> bool:
    return status in UPLOAD_STATUSES


def can_transition(current: str, target: str) -> bool:
    """Return True when an upload may move from ``current`` to ``target``."""

    if not is_valid_status(current) or not is_valid_status(target):
        return False
    return current in ALLOWED_PREDECESSORS[target]


def predecessors_of(target: str) -> tuple[str, ...]:
    if not is_valid_status(target):
        raise ValueError(f"Unsupported upload status: {target}")
    return ALLOWED_PREDECESSORS[target]


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES
