from campusverse.client.api_client import ApiError, QuizApiClient
from campusverse.client.attempt_session import QuizAttemptSession, SubmitOutcome, SubmitResult

__all__ = ["ApiError", "QuizApiClient", "QuizAttemptSession", "SubmitOutcome", "SubmitResult"]
