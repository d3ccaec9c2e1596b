"""OmniSearch API - submit queries and follow their streamed sessions."""
from fastapi import FastAPI, HTTPException, Depends, Header, Request
from fastapi.responses import StreamingResponse
from datetime import datetime, timezone
from typing import AsyncIterator, Optional
import os
import logging
import sys
import secrets
from contextlib import asynccontextmanager

from api import schemas
from core.config import get_store_limit
from core.debug_log import dbg
from core.errors import SessionNotFoundError
from core.runner import SessionRunner
from core.store import SessionStore
from tools import register_default_providers, registered_names

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout
)
logger = logging.getLogger(__name__)


def create_app(runner: Optional[SessionRunner] = None) -> FastAPI:
    """Build the API around ``runner`` (a fresh store and runner by default)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application startup and shutdown lifecycle."""
        logger.info("=" * 60)
        logger.info("🚀 Starting OmniSearch API")
        logger.info("=" * 60)
        register_default_providers(silent=True)
        dbg.maybe_enable_from_env()
        logger.info(f"✅ Providers available: {', '.join(registered_names()) or 'none'}")
        if not os.getenv("API_SECRET_KEY"):
            logger.warning("⚠️ API_SECRET_KEY not set - endpoints are unauthenticated")

        yield  # Application runs

        logger.info("👋 Shutting down OmniSearch API...")
        await app.state.runner.shutdown()

    app = FastAPI(
        title="OmniSearch API",
        description="Submit research queries and follow their streamed reports",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.runner = runner or SessionRunner(SessionStore(max_sessions=get_store_limit()))
    _register_routes(app)
    return app


# --- Authentication ---

async def verify_api_key(x_api_key: Optional[str] = Header(default=None)):
    """Verify API key from header when one is configured."""
    expected = os.getenv("API_SECRET_KEY")
    if not expected:
        return None
    if not x_api_key or not secrets.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=401, detail="Invalid API key")
    return x_api_key


def get_runner(request: Request) -> SessionRunner:
    return request.app.state.runner


def _snapshot(runner: SessionRunner, session_id: str) -> schemas.SessionResponse:
    try:
        session = runner.store.get(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return schemas.SessionResponse.from_session(session, runner.store.tasks(session_id))


def _register_routes(app: FastAPI) -> None:

    # --- Health Check ---

    @app.get("/health")
    async def health(runner: SessionRunner = Depends(get_runner)):
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": "omnisearch-api",
            "providers": registered_names(),
            "active_sessions": len(runner.active_ids()),
        }

    # --- Sessions ---

    @app.post(
        "/sessions",
        response_model=schemas.SessionResponse,
        status_code=202,
        dependencies=[Depends(verify_api_key)],
        summary="Submit a query"
    )
    async def submit_query(
        body: schemas.SearchRequest,
        runner: SessionRunner = Depends(get_runner)
    ):
        """Create a session for the query and start streaming it in the background.

        Returns:
            The freshly created session snapshot

        Raises:
            HTTPException: 400 if the requested provider is not registered
        """
        try:
            handle = runner.submit(body.query, body.to_options())
        except KeyError as exc:
            raise HTTPException(status_code=400, detail=str(exc).strip("'\""))
        return _snapshot(runner, handle.session_id)

    @app.get(
        "/sessions",
        response_model=list[schemas.SessionSummary],
        dependencies=[Depends(verify_api_key)],
        summary="List sessions"
    )
    async def list_sessions(
        active: bool = False,
        runner: SessionRunner = Depends(get_runner)
    ):
        """List sessions newest first; ``active=true`` keeps only running streams."""
        sessions = runner.store.list()
        if active:
            running = set(runner.active_ids())
            sessions = [s for s in sessions if s.id in running]
        return [
            schemas.SessionSummary(
                id=s.id, query=s.query, status=s.status, layout=s.layout, created_at=s.created_at
            )
            for s in sessions
        ]

    @app.get(
        "/sessions/{session_id}",
        response_model=schemas.SessionResponse,
        dependencies=[Depends(verify_api_key)],
        summary="Get session snapshot"
    )
    async def get_session(session_id: str, runner: SessionRunner = Depends(get_runner)):
        return _snapshot(runner, session_id)

    @app.get(
        "/sessions/{session_id}/tasks",
        dependencies=[Depends(verify_api_key)],
        summary="Get the session task board"
    )
    async def get_tasks(session_id: str, runner: SessionRunner = Depends(get_runner)):
        try:
            tasks = runner.store.tasks(session_id)
        except SessionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        return [t.model_dump(mode="json") for t in tasks]

    @app.get(
        "/sessions/{session_id}/stream",
        dependencies=[Depends(verify_api_key)],
        summary="Stream session snapshots as NDJSON"
    )
    async def stream_session(session_id: str, runner: SessionRunner = Depends(get_runner)):
        """Emit one JSON line per committed change until the session is terminal."""
        if session_id not in runner.store:
            raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")

        async def lines() -> AsyncIterator[str]:
            if runner.handle(session_id) is None:
                # Finished or abandoned: nothing more will be committed
                session = runner.store.get(session_id)
                view = schemas.SessionResponse.from_session(session, runner.store.tasks(session_id))
                yield view.model_dump_json() + "\n"
                return
            async for session in runner.store.watch(session_id):
                view = schemas.SessionResponse.from_session(session, runner.store.tasks(session_id))
                yield view.model_dump_json() + "\n"

        return StreamingResponse(lines(), media_type="application/x-ndjson")

    @app.post(
        "/sessions/{session_id}/cancel",
        response_model=schemas.CancelResponse,
        dependencies=[Depends(verify_api_key)],
        summary="Stop consuming a session stream"
    )
    async def cancel_session(session_id: str, runner: SessionRunner = Depends(get_runner)):
        try:
            cancelled = runner.cancel(session_id)
        except SessionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        handle = runner.handle(session_id)
        if handle is not None:
            await handle.wait()
        session = runner.store.get(session_id)
        return schemas.CancelResponse(id=session_id, cancelled=cancelled, status=session.status)

    @app.post(
        "/sessions/{session_id}/retry",
        response_model=schemas.SessionResponse,
        status_code=202,
        dependencies=[Depends(verify_api_key)],
        summary="Re-run a finished session as a new one"
    )
    async def retry_session(session_id: str, runner: SessionRunner = Depends(get_runner)):
        try:
            handle = runner.retry(session_id)
        except SessionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        except ValueError as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        except KeyError as exc:
            raise HTTPException(status_code=400, detail=str(exc).strip("'\""))
        return _snapshot(runner, handle.session_id)

    @app.post(
        "/sessions/{session_id}/follow-up",
        response_model=schemas.SessionResponse,
        status_code=202,
        dependencies=[Depends(verify_api_key)],
        summary="Ask a follow-up question"
    )
    async def follow_up(
        session_id: str,
        body: schemas.FollowUpRequest,
        runner: SessionRunner = Depends(get_runner)
    ):
        try:
            source = runner.store.get(session_id)
        except SessionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        updates = {k: v for k, v in {"persona": body.persona, "provider": body.provider}.items() if v}
        options = source.options.model_copy(update={"file_context": None, **updates})
        try:
            handle = runner.follow_up(session_id, body.query, options)
        except ValueError as exc:
            raise HTTPException(status_code=409, detail=str(exc))
        except KeyError as exc:
            raise HTTPException(status_code=400, detail=str(exc).strip("'\""))
        return _snapshot(runner, handle.session_id)


app = create_app()
