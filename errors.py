"""Exceptions raised while setting up or running the sequence-learning task."""

from typing import Optional


class ExperimentError(Exception):
    """Base exception for the task. Carries a details dict for logging."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(ExperimentError):
    """Raised when a transition matrix is malformed (shape, sign or row sums)."""


class ConfigurationError(ExperimentError):
    """Raised when the configuration cannot be honoured, e.g. no key mapping for a matrix size."""

    def __init__(self, message: str, option: str, value, details: Optional[dict] = None):
        payload = {"option": option, "value": value}
        payload.update(details or {})
        super().__init__(message, payload)
        self.option = option
        self.value = value


class TrialAbortedError(ExperimentError):
    """Raised when a trial exceeds the optional attempt limit of the correction loop."""

    def __init__(self, overall_trial: int, attempts: int):
        super().__init__(
            f"Trial {overall_trial} aborted after {attempts} incorrect attempts.",
            {"overall_trial": overall_trial, "attempts": attempts},
        )
        self.overall_trial = overall_trial
        self.attempts = attempts
