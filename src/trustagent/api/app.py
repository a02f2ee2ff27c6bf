"""
Core API backend for TrustAgent.

This module exposes the agent loop through a RESTful API that's used by frontends.
It exposes the following endpoints:
- **GET /health**  - liveness probe for health checks.
- **POST /sessions** - create a new session, returns a session ID.
- **GET /sessions** - list sessions, most recently updated first.
- **PATCH /sessions/{id}** - rename a session.
- **DELETE /sessions/{id}** - forget a session.
- **GET /tools** - list the tools of every connected backend.
- **POST /agent**   - multi-turn interaction: {"message", "session_id", "tools"}

Sessions live in memory only; persisting them is the caller's concern.
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from datetime import (
    datetime,
    timezone,
)
from typing import (
    Dict,
    List,
    Optional,
    Sequence,
)

from fastapi import (
    Depends,
    FastAPI,
    HTTPException,
)
from fastapi.middleware.cors import CORSMiddleware
from pydantic import (
    BaseModel,
    Field,
)

from trustagent.agent.agent_loop import AgentContext
from trustagent.api.models import (
    ErrorDetail,
    MessageRequest,
    MessageResponse,
    RenameRequest,
    SessionRequest,
    SessionResponse,
    SessionSummary,
)
from trustagent.common import (
    AnsiColors,
    colored_print,
)
from trustagent.config import settings
from trustagent.core.errors import (
    AgentError,
    IterationsExhausted,
)
from trustagent.core.schema import (
    Role,
    RunStatus,
    ToolDescriptor,
    Turn,
)
from trustagent.tools import (
    LOCAL_BACKEND,
    BackendRegistry,
    collect_descriptors,
)

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Chat"
_TITLE_LENGTH = 20

_STATUS_BY_CODE = {
    "tool_not_found": 400,
    "backend_unavailable": 400,
    "iterations_exhausted": 409,
    "transport_error": 502,
    "configuration_error": 503,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatSession(BaseModel):
    """A conversation kept between requests."""

    session_id: str
    title: str = DEFAULT_TITLE
    turns: List[Turn] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    custom_title: bool = False


# Session storage (in-memory for now, could be moved to a database)
sessions: Dict[str, ChatSession] = {}
_session_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

# Shared agent state; the local backend is always available
context = AgentContext(registry=BackendRegistry({LOCAL_BACKEND.name: LOCAL_BACKEND}))

app = FastAPI(title="TrustAgent API", version="0.1.0", description="Tool-using chat agent API")

# Add CORS middleware to allow requests from local frontends
app.add_middleware(
    CORSMiddleware,
    allow_origins=[f"http://localhost:{settings.API_PORT}"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
def get_context() -> AgentContext:
    """Dependency returning the shared agent context."""
    return context


def get_or_create_session(session_id: Optional[str] = None, title: Optional[str] = None) -> str:
    """Get existing session or create a new one."""
    if session_id and session_id in sessions:
        return session_id

    new_session_id = session_id or str(uuid.uuid4())
    sessions[new_session_id] = ChatSession(
        session_id=new_session_id, title=title or DEFAULT_TITLE, custom_title=bool(title)
    )
    return new_session_id


def generate_session_title(turns: Sequence[Turn]) -> str:
    """Title a session after its first user message."""
    for turn in turns:
        if turn.role is Role.USER:
            title = turn.content.strip()
            if len(title) > _TITLE_LENGTH:
                title = title[:_TITLE_LENGTH] + "..."
            return title or DEFAULT_TITLE
    return DEFAULT_TITLE


def _require_session(session_id: str) -> ChatSession:
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return session


def _record_turns(session_id: str, turns: Sequence[Turn]) -> None:
    """Append *turns* to the session, creating it on its first exchange."""
    session = sessions[get_or_create_session(session_id)]
    session.turns.extend(turns)
    session.updated_at = _utcnow()
    if not session.custom_title:
        session.title = generate_session_title(session.turns)


def _error_response(exc: AgentError, session_id: Optional[str] = None) -> HTTPException:
    detail = ErrorDetail(code=exc.code, message=str(exc), session_id=session_id)
    return HTTPException(status_code=_STATUS_BY_CODE.get(exc.code, 500), detail=detail.model_dump())


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.post("/sessions", response_model=SessionResponse, summary="Create a new session")
async def create_session(req: Optional[SessionRequest] = None) -> SessionResponse:
    """Create a new conversation session."""
    session_id = get_or_create_session(title=req.title if req else None)
    return SessionResponse(session_id=session_id)


@app.get("/sessions", response_model=List[SessionSummary], summary="List sessions")
async def list_sessions() -> List[SessionSummary]:
    """List sessions, most recently updated first."""
    ordered = sorted(sessions.values(), key=lambda s: s.updated_at, reverse=True)
    return [
        SessionSummary(
            session_id=s.session_id,
            title=s.title,
            message_count=len(s.turns),
            created_at=s.created_at,
            updated_at=s.updated_at,
        )
        for s in ordered
    ]


@app.patch("/sessions/{session_id}", response_model=SessionResponse, summary="Rename a session")
async def rename_session(session_id: str, req: RenameRequest) -> SessionResponse:
    """Give a session a custom title."""
    session = _require_session(session_id)
    session.title = req.title
    session.custom_title = True
    session.updated_at = _utcnow()
    return SessionResponse(session_id=session_id)


@app.delete("/sessions/{session_id}", status_code=204, summary="Delete a session")
async def delete_session(session_id: str) -> None:
    """Forget a session."""
    _require_session(session_id)
    del sessions[session_id]
    _session_locks.pop(session_id, None)


@app.get("/tools", response_model=List[ToolDescriptor], summary="List available tools")
async def list_tools(ctx: AgentContext = Depends(get_context)) -> List[ToolDescriptor]:
    """List the tools of every connected backend."""
    try:
        return await collect_descriptors(ctx.registry.snapshot())
    except AgentError as exc:
        logger.warning("Tool discovery failed: %s", exc)
        raise _error_response(exc) from exc


@app.post("/agent", response_model=MessageResponse, summary="Process a message")
async def agent_endpoint(
    req: MessageRequest, ctx: AgentContext = Depends(get_context)
) -> MessageResponse:
    """Run the agent loop on a user message with optional session context."""
    session_id = req.session_id or str(uuid.uuid4())

    statuses: List[str] = []

    def record_status(status: RunStatus) -> None:
        statuses.append(status.describe())

    user_turn = Turn(role=Role.USER, content=req.message)

    # One run at a time per session, so each run sees the exchanges recorded before it
    async with _session_locks[session_id]:
        existing = sessions.get(session_id)
        history = existing.turns if existing else []
        try:
            agent = ctx.create_agent(status_sink=record_status)
            tools = await collect_descriptors(ctx.registry.snapshot())
            if req.tools is not None:
                enabled = set(req.tools)
                tools = [tool for tool in tools if tool.tool_name in enabled]
            result = await agent.run([*history, user_turn], tools, ctx.registry)
        except IterationsExhausted as exc:
            # Keep the request and its tool rounds so "continue" picks up where this run stopped
            logger.warning("Agent run failed [%s]: %s", exc.code, exc)
            _record_turns(session_id, [user_turn, *exc.turns])
            raise _error_response(exc, session_id) from exc
        except AgentError as exc:
            logger.warning("Agent run failed [%s]: %s", exc.code, exc)
            raise _error_response(exc) from exc

        # Record the final exchange only; intermediate tool rounds stay inside the run
        _record_turns(session_id, [user_turn, Turn(role=Role.ASSISTANT, content=result.answer)])

    return MessageResponse(
        reply=result.answer, session_id=session_id, statuses=statuses, rounds=result.rounds
    )


@app.get("/", summary="API root")
async def root() -> dict[str, str]:
    """Return a simple welcome message."""
    return {"message": "Welcome to the TrustAgent API! Use /docs for API documentation."}


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload.
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg-import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting TrustAgent API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    logger.debug(
        "API settings: %s", settings.model_dump(exclude={"OPENAI_API_KEY", "ANTHROPIC_API_KEY"})
    )

    colored_print(f"TrustAgent API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "trustagent.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m trustagent.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
