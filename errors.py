"""
errors.py — Failure taxonomy for the analysis workflow.

Every error carries a short user-facing message that never includes upstream
response bodies, plus the HTTP status the API answers with.
"""


class AnalysisError(Exception):
    status_code = 500
    message = "An error occurred during analysis."

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InsufficientContent(AnalysisError):
    status_code = 422
    message = "Could not extract enough text from this file"


class QuotaExceeded(AnalysisError):
    status_code = 403
    message = "You have reached your monthly analysis limit."

    def __init__(self, remaining: int, requested: int):
        self.remaining = remaining
        self.requested = requested
        super().__init__(
            f"You have {remaining} analyses remaining but selected {requested} files."
        )


class Unauthorized(AnalysisError):
    status_code = 401
    message = "Please sign in to analyze resumes"


class UpstreamRateLimited(AnalysisError):
    status_code = 429
    message = "Rate limit exceeded. Please try again later."


class UpstreamQuotaExhausted(AnalysisError):
    status_code = 402
    message = "AI credits depleted. Please add more credits."


class UpstreamGenericFailure(AnalysisError):
    status_code = 502
    message = "Failed to analyze resume. Please try again."


class PersistenceFailure(AnalysisError):
    status_code = 500
    message = "Failed to save analysis results"


class NotificationFailure(AnalysisError):
    message = "Failed to send notification"
