"""Error taxonomy for queue orchestration.

Only retry exhaustion is user-visible; everything else is caught close to
where it happens and logged.
"""

from dataclasses import dataclass


class SceneFlowError(Exception):
    """Base class for all domain errors."""


class LocatorNotFound(SceneFlowError):
    """A UI element could not be found after all strategies and retries."""

    def __init__(self, element_name: str, attempts: int = 0):
        self.element_name = element_name
        self.attempts = attempts
        super().__init__(f"Element not found: {element_name}")


class SubmissionFailed(SceneFlowError):
    """A required step of a submission protocol errored."""


class InferenceAmbiguous(SceneFlowError):
    """The host UI state could not be sampled or interpreted this tick."""


class PersistenceError(SceneFlowError):
    """Key-value store read or write failed."""


class DeliveryFailure(SceneFlowError):
    """Notification or webhook delivery failed."""


@dataclass
class RateLimitWait:
    """Not an error: the rate limiter is deliberately suspending dispatch."""

    seconds: float
    window: str  # "minute" | "hour"
    in_window: int
    limit: int
