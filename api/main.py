from fastapi import FastAPI, HTTPException, Depends, Request, Body, Query, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from contextlib import asynccontextmanager
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Literal, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from core.config import settings
from core.exceptions import EmptyPoolError, ResultPersistFailure
from core.logger import logger, setup_logging
from db.session import AsyncSessionLocal, engine as db_engine, get_db, init_models
from schemas.quiz import ALL_CATEGORIES, CategoryInfo, Question, QuestionView, ResultAnalytics, ScoredResult
from services.analytics import analyze
from services.engine import QuizSessionEngine, SessionState
from services.monitoring_service import monitor_sessions
from services.question_service import QuestionService
from services.result_service import DatabaseResultSink, ResultService
from services.session_service import SessionService
from services.timing import format_clock
from utils.parser import ParserError, describe_validation_error, parse_lines_to_questions, parse_question_bank


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    setup_logging()
    logger.info("Starting Quiz API...", env=settings.ENV)

    await init_models()
    async with AsyncSessionLocal() as db:
        await QuestionService(db).seed_from_file(settings.QUESTIONS_FILE)

    session_service = SessionService(DatabaseResultSink(AsyncSessionLocal))
    app.state.session_service = session_service

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        monitor_sessions,
        trigger="interval",
        seconds=settings.MONITOR_INTERVAL_SECONDS,
        args=[session_service],
        id=settings.MONITOR_JOB_ID,
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Scheduler started (Session Monitor).")

    yield

    logger.info("Shutting down Quiz API...")
    scheduler.shutdown(wait=False)
    await session_service.shutdown()
    await db_engine.dispose()


API_DESCRIPTION = """
## Quiz API

Timed multiple-choice quizzes.

* **questions** - question bank, categories and imports.
* **sessions** - a running quiz: answer, skip, navigate, submit, retake.
  Each session has a 15 minute countdown and is submitted automatically when it runs out.
* **results** - finished quiz results and their analytics.
"""

TAGS_METADATA = [
    {"name": "questions", "description": "Question bank and categories."},
    {"name": "sessions", "description": "Running quiz sessions."},
    {"name": "results", "description": "Saved quiz results and analytics."},
]

app = FastAPI(
    title="Quiz API",
    description=API_DESCRIPTION,
    version="1.0.0",
    openapi_tags=TAGS_METADATA,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Malformed input is rejected at the edge with a readable message
    return JSONResponse(status_code=400, content={"detail": describe_validation_error(exc.errors())})


# === Pydantic Models ===

class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartSessionRequest(ApiModel):
    """Request body for starting a quiz session."""
    category: Optional[str] = Field(None, description="Category label, all categories when omitted")
    size: Optional[int] = Field(None, ge=1, le=100, description="Number of questions, defaults to 10")


class AnswerRequest(ApiModel):
    question_id: int = Field(..., description="Question being answered")
    answer: str = Field(..., description="Chosen option text")
    time_spent: Optional[int] = Field(None, ge=0, description="Seconds spent, question clock when omitted")


class SkipRequest(ApiModel):
    question_id: int
    time_spent: Optional[int] = Field(None, ge=0)


class NavigateRequest(ApiModel):
    action: Literal["next", "previous", "goto"]
    index: Optional[int] = Field(None, description="Target index for 'goto'")


class TextImportRequest(ApiModel):
    text: str = Field(..., description="Questions in ?question / +correct / =wrong format")
    category: str = Field(..., min_length=1)
    difficulty: str = Field(..., min_length=1)


class ImportResponse(ApiModel):
    message: str
    count: int
    errors: List[str] = Field(default_factory=list)


class QuestionStatus(ApiModel):
    question_id: int
    status: Literal["answered", "skipped", "unanswered"]


class SessionSnapshot(ApiModel):
    """State of a quiz session as seen by the player."""
    session_id: str
    state: SessionState
    topic: str
    current_index: int
    total_questions: int
    answered_count: int
    unanswered_count: int
    current_question: Optional[QuestionView] = None
    current_answer: Optional[str] = None
    question_elapsed: int
    question_timer: str
    question_time_percent: float
    session_remaining: int
    session_timer: str
    questions: List[QuestionStatus]
    forced_submit: bool = False
    result: Optional[ScoredResult] = None


class SuccessResponse(ApiModel):
    """Generic success response."""
    status: str = Field(default="success", description="Operation status")


# === Dependencies ===

def get_question_service(db: AsyncSession = Depends(get_db)) -> QuestionService:
    return QuestionService(db)


def get_result_service(db: AsyncSession = Depends(get_db)) -> ResultService:
    return ResultService(db)


def get_session_service(request: Request) -> SessionService:
    return request.app.state.session_service


def build_snapshot(engine: QuizSessionEngine) -> SessionSnapshot:
    statuses = []
    for question in engine.questions:
        record = engine.ledger.get(question.id)
        if record is None:
            state = "unanswered"
        elif record.skipped:
            state = "skipped"
        else:
            state = "answered"
        statuses.append(QuestionStatus(question_id=question.id, status=state))

    current = engine.current_question
    current_record = engine.ledger.get(current.id) if current else None
    return SessionSnapshot(
        session_id=engine.session_id,
        state=engine.state,
        topic=engine.category or ALL_CATEGORIES,
        current_index=engine.current_index,
        total_questions=len(engine.questions),
        answered_count=engine.count_answered(),
        unanswered_count=engine.unanswered_count(),
        current_question=QuestionView.from_question(current) if current else None,
        current_answer=current_record.answer if current_record else None,
        question_elapsed=engine.question_clock.elapsed,
        question_timer=format_clock(engine.question_clock.elapsed),
        question_time_percent=engine.question_clock.percent_remaining,
        session_remaining=engine.session_clock.remaining,
        session_timer=format_clock(engine.session_clock.remaining),
        questions=statuses,
        forced_submit=engine.forced,
        result=engine.result,
    )


def require_session(session_id: str, sessions: SessionService) -> QuizSessionEngine:
    engine = sessions.get_session(session_id)
    if not engine:
        raise HTTPException(status_code=404, detail="Quiz session not found")
    return engine


def require_active(engine: QuizSessionEngine):
    if engine.state != SessionState.ACTIVE:
        raise HTTPException(status_code=409, detail=f"Quiz session is {engine.state.value}")


# === Questions ===

@app.get("/api/categories", response_model=List[CategoryInfo], tags=["questions"], summary="List categories")
async def list_categories(service: QuestionService = Depends(get_question_service)):
    """Categories with display names and question counts."""
    return await service.list_categories()


@app.get("/api/questions", response_model=List[Question], tags=["questions"], summary="List all questions")
async def list_questions(service: QuestionService = Depends(get_question_service)):
    return await service.fetch_all()


@app.get(
    "/api/questions/category/{category}",
    response_model=List[Question],
    tags=["questions"],
    summary="List questions by category",
)
async def list_questions_by_category(category: str, service: QuestionService = Depends(get_question_service)):
    return await service.fetch_by_category(category)


@app.get(
    "/api/questions/{question_id}",
    response_model=Question,
    tags=["questions"],
    summary="Get a question",
    responses={404: {"description": "Question not found"}},
)
async def get_question(question_id: int, service: QuestionService = Depends(get_question_service)):
    question = await service.get_question(question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")
    return question


@app.post(
    "/api/questions/import",
    response_model=ImportResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["questions"],
    summary="Import a JSON question bank",
    responses={400: {"description": "Malformed question bank"}},
)
async def import_questions(
    payload: Dict[str, Any] = Body(...),
    service: QuestionService = Depends(get_question_service),
):
    try:
        drafts = parse_question_bank(payload)
    except ParserError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        created = await service.bulk_create(drafts)
    except SQLAlchemyError as e:
        logger.error("Error importing questions", error=str(e))
        raise HTTPException(status_code=500, detail="Error importing questions")
    return ImportResponse(message="Questions imported successfully", count=len(created))


@app.post(
    "/api/questions/import/text",
    response_model=ImportResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["questions"],
    summary="Import questions written as plain text",
)
async def import_questions_text(
    payload: TextImportRequest,
    service: QuestionService = Depends(get_question_service),
):
    try:
        drafts, errors = parse_lines_to_questions(payload.text.splitlines(), payload.category, payload.difficulty)
    except ParserError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not drafts:
        raise HTTPException(status_code=400, detail="; ".join(errors[:15]))

    try:
        created = await service.bulk_create(drafts)
    except SQLAlchemyError as e:
        logger.error("Error importing questions", error=str(e))
        raise HTTPException(status_code=500, detail="Error importing questions")
    message = "Questions imported successfully" if not errors else "Questions imported with errors"
    return ImportResponse(message=message, count=len(created), errors=errors)


# === Sessions ===

@app.post(
    "/api/sessions",
    response_model=SessionSnapshot,
    status_code=status.HTTP_201_CREATED,
    tags=["sessions"],
    summary="Start a quiz session",
    responses={404: {"description": "No questions available"}},
)
async def start_session(
    payload: Optional[StartSessionRequest] = None,
    questions: QuestionService = Depends(get_question_service),
    sessions: SessionService = Depends(get_session_service),
):
    payload = payload or StartSessionRequest()
    if payload.category:
        pool = await questions.fetch_by_category(payload.category)
    else:
        pool = await questions.fetch_all()

    try:
        engine = sessions.create_session(pool, category=payload.category, size=payload.size)
    except EmptyPoolError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return build_snapshot(engine)


@app.get("/api/sessions/{session_id}", response_model=SessionSnapshot, tags=["sessions"], summary="Get session state")
async def get_session(session_id: str, sessions: SessionService = Depends(get_session_service)):
    return build_snapshot(require_session(session_id, sessions))


@app.post("/api/sessions/{session_id}/answers", response_model=SessionSnapshot, tags=["sessions"], summary="Answer a question")
async def answer_question(
    session_id: str,
    payload: AnswerRequest,
    sessions: SessionService = Depends(get_session_service),
):
    engine = require_session(session_id, sessions)
    require_active(engine)
    time_spent = payload.time_spent if payload.time_spent is not None else engine.question_clock.elapsed
    if not engine.answer(payload.question_id, payload.answer, time_spent):
        raise HTTPException(status_code=400, detail="Question is not part of this session")
    return build_snapshot(engine)


@app.post("/api/sessions/{session_id}/skip", response_model=SessionSnapshot, tags=["sessions"], summary="Skip a question")
async def skip_question(
    session_id: str,
    payload: SkipRequest,
    sessions: SessionService = Depends(get_session_service),
):
    engine = require_session(session_id, sessions)
    require_active(engine)
    time_spent = payload.time_spent if payload.time_spent is not None else engine.question_clock.elapsed
    if not engine.skip(payload.question_id, time_spent):
        raise HTTPException(status_code=400, detail="Question is not part of this session")
    # Skipping moves on to the next question when there is one
    if payload.question_id == engine.current_question.id:
        engine.go_to_next()
    return build_snapshot(engine)


@app.post(
    "/api/sessions/{session_id}/skip-remaining",
    response_model=SessionSnapshot,
    tags=["sessions"],
    summary="Mark every unanswered question as skipped",
)
async def skip_remaining(session_id: str, sessions: SessionService = Depends(get_session_service)):
    engine = require_session(session_id, sessions)
    require_active(engine)
    engine.skip_remaining()
    return build_snapshot(engine)


@app.post("/api/sessions/{session_id}/navigate", response_model=SessionSnapshot, tags=["sessions"], summary="Move between questions")
async def navigate(
    session_id: str,
    payload: NavigateRequest,
    sessions: SessionService = Depends(get_session_service),
):
    engine = require_session(session_id, sessions)
    require_active(engine)
    if payload.action == "next":
        engine.go_to_next()
    elif payload.action == "previous":
        engine.go_to_previous()
    else:
        if payload.index is None:
            raise HTTPException(status_code=400, detail="index is required for goto")
        engine.go_to(payload.index)
    return build_snapshot(engine)


@app.post(
    "/api/sessions/{session_id}/submit",
    response_model=SessionSnapshot,
    tags=["sessions"],
    summary="Submit the quiz",
    responses={
        409: {"description": "Unanswered questions, or a submit is already running"},
        503: {"description": "Result could not be saved, retry"},
    },
)
async def submit_session(
    session_id: str,
    force: bool = Query(False, description="Submit even with unanswered questions"),
    sessions: SessionService = Depends(get_session_service),
):
    engine = require_session(session_id, sessions)

    unanswered = engine.unanswered_count()
    if engine.state == SessionState.ACTIVE and unanswered > 0 and not force:
        raise HTTPException(
            status_code=409,
            detail=f"You have {unanswered} unanswered questions. Go back and complete them, mark them as skipped, or submit with force=true.",
        )

    try:
        result = await engine.submit()
    except ResultPersistFailure:
        raise HTTPException(status_code=503, detail="Failed to save quiz result. Please try again.")

    if result is None:
        if engine.state == SessionState.LOADING:
            raise HTTPException(status_code=409, detail="Quiz session has not started")
        raise HTTPException(status_code=409, detail="Quiz is already being submitted")
    return build_snapshot(engine)


@app.post("/api/sessions/{session_id}/retake", response_model=SessionSnapshot, tags=["sessions"], summary="Retake the quiz")
async def retake_session(session_id: str, sessions: SessionService = Depends(get_session_service)):
    engine = require_session(session_id, sessions)
    if not sessions.retake(session_id):
        raise HTTPException(status_code=409, detail="Only a submitted quiz can be retaken")
    return build_snapshot(engine)


@app.delete("/api/sessions/{session_id}", response_model=SuccessResponse, tags=["sessions"], summary="Quit a quiz session")
async def quit_session(session_id: str, sessions: SessionService = Depends(get_session_service)):
    if not sessions.stop_session(session_id):
        raise HTTPException(status_code=404, detail="Quiz session not found")
    return {"status": "success"}


# === Results ===

@app.post(
    "/api/quiz-results",
    response_model=ScoredResult,
    status_code=status.HTTP_201_CREATED,
    tags=["results"],
    summary="Save a quiz result",
)
async def create_quiz_result(result: ScoredResult, service: ResultService = Depends(get_result_service)):
    try:
        return await service.create_result(result.model_copy(update={"id": None}))
    except SQLAlchemyError as e:
        logger.error("Error saving quiz result", error=str(e))
        raise HTTPException(status_code=500, detail="Error saving quiz result")


@app.get("/api/quiz-results", response_model=List[ScoredResult], tags=["results"], summary="List quiz results")
async def list_quiz_results(service: ResultService = Depends(get_result_service)):
    try:
        return await service.list_results()
    except SQLAlchemyError as e:
        logger.error("Error fetching quiz results", error=str(e))
        raise HTTPException(status_code=500, detail="Error fetching quiz results")


async def _load_result(result_id: int, service: ResultService) -> ScoredResult:
    try:
        result = await service.get_result(result_id)
    except SQLAlchemyError as e:
        logger.error("Error fetching quiz result", result_id=result_id, error=str(e))
        raise HTTPException(status_code=500, detail="Error fetching quiz result")
    if not result:
        raise HTTPException(status_code=404, detail="Quiz result not found")
    return result


@app.get("/api/quiz-results/{result_id}", response_model=ScoredResult, tags=["results"], summary="Get a quiz result")
async def get_quiz_result(result_id: int, service: ResultService = Depends(get_result_service)):
    return await _load_result(result_id, service)


@app.get(
    "/api/quiz-results/{result_id}/analytics",
    response_model=ResultAnalytics,
    tags=["results"],
    summary="Category and time analytics of a result",
)
async def get_quiz_result_analytics(result_id: int, service: ResultService = Depends(get_result_service)):
    return analyze(await _load_result(result_id, service))
