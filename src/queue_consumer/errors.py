"""Exception hierarchy for queue-consumer."""

from __future__ import annotations


class QueueConsumerError(RuntimeError):
    """Base error for queue-consumer failures."""


class MaxAttemptsExceededError(QueueConsumerError):
    """Job ran out of attempts and must be failed permanently."""


class JobHandlerError(QueueConsumerError):
    """Job payload handler cannot be resolved or is not callable."""


class JobNotFoundError(QueueConsumerError):
    """Operator command referenced a job or failed record that does not exist."""
