from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from campusverse.api.routes.ai import router as ai_router
from campusverse.api.routes.health import router as health_router
from campusverse.api.routes.quizzes import router as quizzes_router
from campusverse.api.routes.students import router as students_router
from campusverse.core.clock import utcnow
from campusverse.core.config import settings
from campusverse.core.errors import DomainError
from campusverse.core.logging_setup import configure_logging
from campusverse.db.base import Base
from campusverse.db.session import SessionLocal, engine
from campusverse.models.course import Course
from campusverse.models.quiz import Quiz, QuizQuestion
from campusverse.services.quiz_service import generate_access_code
from campusverse.services.user_service import ensure_user_exists

logger = logging.getLogger(__name__)


def envelope(request_id: str, data: Any = None, error: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"request_id": request_id, "data": data, "error": error}


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = req_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = req_id
    return response


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(request_id=_request_id(request), data=None, error=exc.to_error()),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if isinstance(detail, dict):
        code = str(detail.get("code") or "HTTP_ERROR")
        message = detail.get("message") or str(detail)
        error = {"code": code, "message": message, "details": detail}
    elif exc.status_code == 404:
        error = {"code": "NOT_FOUND", "message": str(detail)}
    else:
        error = {"code": "HTTP_ERROR", "message": str(detail)}

    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(request_id=_request_id(request), data=None, error=error),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Request-shape problems are reported as 400, like service-level validation
    return JSONResponse(
        status_code=400,
        content=envelope(
            request_id=_request_id(request),
            data=None,
            error={
                "code": "VALIDATION_ERROR",
                "message": "Invalid request",
                "details": {"errors": jsonable_encoder(exc.errors())},
            },
        ),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=envelope(
            request_id=_request_id(request),
            data=None,
            error={"code": "INTERNAL_ERROR", "message": "Internal server error"},
        ),
    )


def seed_demo_data() -> None:
    """Demo faculty (id=1), admin (id=99), students 2..6 and one open quiz.

    Safe to run repeatedly.
    """
    db = SessionLocal()
    try:
        ensure_user_exists(db, 1, role="faculty")
        ensure_user_exists(db, 99, role="admin")
        for sid in range(2, 7):
            student = ensure_user_exists(db, sid, role="student")
            if not student.branch:
                student.branch, student.section = "CSE", "A"
                student.admission_number = f"ADM{sid:04d}"
        db.commit()

        course = db.query(Course).filter(Course.code == "CS101").first()
        if not course:
            course = Course(name="Introduction to Programming", code="CS101", faculty_id=1)
            db.add(course)
            db.commit()

        if not db.query(Quiz).filter(Quiz.course_id == course.id).first():
            now = utcnow()
            quiz = Quiz(
                title="Python basics",
                description="Warm-up quiz",
                course_id=course.id,
                faculty_id=1,
                branch="CSE",
                section="A",
                duration_minutes=15,
                total_marks=2,
                passing_marks=1,
                start_date=now - timedelta(hours=1),
                end_date=now + timedelta(days=7),
                code=generate_access_code(db),
            )
            quiz.questions = [
                QuizQuestion(order_no=0, prompt="What does len([1, 2, 3]) return?", options=["1", "2", "3", "4"], correct_option=2, marks=1),
                QuizQuestion(order_no=1, prompt="Which keyword defines a function?", options=["func", "def", "lambda", "fn"], correct_option=1, marks=1),
            ]
            db.add(quiz)
            db.commit()
            logger.info("Seeded demo quiz code=%s", quiz.code)
    finally:
        db.close()


@app.on_event("startup")
def on_startup():
    configure_logging()
    Base.metadata.create_all(bind=engine)
    if settings.SEED_DEMO_DATA:
        seed_demo_data()
    logger.info("%s started env=%s", settings.APP_NAME, settings.ENV)


app.include_router(health_router, prefix="/api")
app.include_router(quizzes_router, prefix="/api")
app.include_router(students_router, prefix="/api")
app.include_router(ai_router, prefix="/api")
