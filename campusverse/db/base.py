from campusverse.db.base_class import Base

# Import every model so Base.metadata has all tables (alembic autogenerate, create_all)
from campusverse.models.user import User
from campusverse.models.course import Course
from campusverse.models.quiz import Quiz, QuizQuestion
from campusverse.models.quiz_attempt import QuizAttempt
from campusverse.models.quiz_session import QuizSession
from campusverse.models.ai_credit import AICreditAccount, AICreditTransaction
from campusverse.models.roadmap import Roadmap
