"""Shared error code constants surfaced to API clients."""

MISSING_CONTEXT = "MISSING_CONTEXT"
MISSING_COLUMN_DESCRIPTIONS = "MISSING_COLUMN_DESCRIPTIONS"

AUDIT_IN_PROGRESS = "AUDIT_IN_PROGRESS"
AUDIT_ALREADY_COMPLETE = "AUDIT_ALREADY_COMPLETE"

NO_AUDIT = "NO_AUDIT"
TASK_ENQUEUE_FAILED = "TASK_ENQUEUE_FAILED"

PRECONDITION_FAILURES = [
    MISSING_CONTEXT,
    MISSING_COLUMN_DESCRIPTIONS,
]

CONFLICT_FAILURES = [
    AUDIT_IN_PROGRESS,
    AUDIT_ALREADY_COMPLETE,
]
