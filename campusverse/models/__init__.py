from campusverse.models.user import User
from campusverse.models.course import Course
from campusverse.models.quiz import Quiz, QuizQuestion
from campusverse.models.quiz_attempt import QuizAttempt
from campusverse.models.quiz_session import QuizSession
from campusverse.models.ai_credit import AICreditAccount, AICreditTransaction, CreditAction
from campusverse.models.roadmap import Roadmap

__all__ = [
    "User",
    "Course",
    "Quiz",
    "QuizQuestion",
    "QuizAttempt",
    "QuizSession",
    "AICreditAccount",
    "AICreditTransaction",
    "CreditAction",
    "Roadmap",
]
