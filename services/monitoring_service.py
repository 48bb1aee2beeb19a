from datetime import timedelta

from core.logger import logger
from core.config import settings
from core.exceptions import ResultPersistFailure
from services.engine import QuizSessionEngine, SessionState
from services.session_service import SessionService
from services.timing import utcnow

async def monitor_sessions(session_service: SessionService):
    """
    Periodic task scheduled every MONITOR_INTERVAL_SECONDS.
    Catches sessions whose clock task died, retries unsaved automatic submits
    and drops finished sessions nobody looks at anymore.
    """
    logger.debug("Starting session monitor scan...", sessions=len(session_service.sessions))

    for engine in session_service.list_sessions():
        try:
            if engine.state == SessionState.ACTIVE:
                await force_expired_session(engine)
            elif engine.state == SessionState.SUBMITTING:
                if engine.forced:
                    await retry_pending_result(engine)
                elif not engine.persisting:
                    # Failed user submit, kept for the user to retry until idle
                    evict_idle_session(session_service, engine)
            else:
                evict_idle_session(session_service, engine)
        except Exception as e:
            logger.error("Monitor: Error checking session", session_id=engine.session_id, error=str(e))

    logger.debug("Session monitor scan completed.")

async def force_expired_session(engine: QuizSessionEngine):
    """Submit an active session that has outlived its countdown."""
    budget = engine.session_clock.budget_seconds + settings.EXPIRED_GRACE_SECONDS
    if engine.started_at is None or utcnow() - engine.started_at < timedelta(seconds=budget):
        return

    logger.info("Monitor: Forcing submit for expired session", session_id=engine.session_id)
    try:
        await engine.submit(forced=True)
    except ResultPersistFailure as e:
        logger.warning("Monitor: Forced submit could not be saved", session_id=engine.session_id, error=e.reason)

async def retry_pending_result(engine: QuizSessionEngine):
    """Retry saving a result the countdown submitted but the sink rejected."""
    if not engine.forced or engine.persisting:
        return

    logger.info("Monitor: Retrying result save", session_id=engine.session_id)
    try:
        await engine.retry_persist()
    except ResultPersistFailure as e:
        logger.warning("Monitor: Result save failed again", session_id=engine.session_id, error=e.reason)

def evict_idle_session(session_service: SessionService, engine: QuizSessionEngine):
    ttl = timedelta(seconds=settings.FINISHED_SESSION_TTL_SECONDS)
    if utcnow() - engine.last_activity > ttl:
        logger.info("Monitor: Removing idle session", session_id=engine.session_id, state=engine.state.value)
        session_service.stop_session(engine.session_id)
