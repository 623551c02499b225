from __future__ import annotations


class AppError(Exception):
    # Base class for domain errors (intended, meaningful failures).
    pass


class SurveyNotFound(AppError):
    # Raised when a survey id does not resolve in the store.
    pass


class DataNotSufficient(AppError):
    # Raised when a survey has no responses to analyze.
    pass


class PreconditionFailed(AppError):
    # Raised when an analysis method is missing required context (e.g. a vision statement).
    pass


class ImporterError(AppError):
    # Raised for importer-related failures (unreadable file, empty dataset, etc.).
    pass
