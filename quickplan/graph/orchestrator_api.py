"""
FastAPI endpoints for the Quick Plan orchestrator.

Each session owns one QuickPlanOrchestrator. Mutating endpoints apply the
change and then compute the next question, so every response carries the
question to render (or none) plus the messages revealed so far.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from quickplan.gateway import EnrichmentGateway
from quickplan.graph.config import OrchestratorConfig, load_config_from_env
from quickplan.graph.orchestrator import SKIP, QuickPlanOrchestrator
from quickplan.shared.errors import (
    DuplicateSubmissionError,
    PersistenceFailure,
    ValidationError,
)
from quickplan.shared.persistence import JsonFileSnapshotStore, SnapshotStore


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/quick-plan", tags=["quick-plan"])

# In-memory session storage (replace with Redis/DB in production)
_sessions: Dict[str, QuickPlanOrchestrator] = {}

# Shared across sessions so the response cache and in-flight dedup apply globally
_config: Optional[OrchestratorConfig] = None
_gateway: Optional[EnrichmentGateway] = None
_store: Optional[SnapshotStore] = None


def get_config() -> OrchestratorConfig:
    global _config
    if _config is None:
        _config = load_config_from_env()
    return _config


def get_gateway(config: OrchestratorConfig = Depends(get_config)):
    """Get or create the shared enrichment gateway."""
    global _gateway
    if _gateway is None:
        _gateway = EnrichmentGateway.from_config(config)
    return _gateway


def get_store(config: OrchestratorConfig = Depends(get_config)) -> SnapshotStore:
    global _store
    if _store is None:
        _store = JsonFileSnapshotStore(config.snapshot_dir)
    return _store


# ============================================================================
# Request/Response Models
# ============================================================================


class StartSessionRequest(BaseModel):
    session_id: Optional[str] = Field(default=None, description="Optional client-chosen session id")


class RespondRequest(BaseModel):
    """Answer to the pending question."""

    question_id: str = Field(description="Id of the question being answered")
    value: Any = Field(default=None, description="Answer payload; shape depends on the input kind")
    note: Optional[str] = Field(default=None, description="Free-text note attached to the field")


class SessionResponse(BaseModel):
    """Session view returned by every endpoint."""

    session_id: str
    phase: str
    question: Optional[Dict[str, Any]] = Field(
        default=None, description="Question to render next, if any"
    )
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    can_go_back: bool = False
    trip_id: Optional[str] = None


class SessionStateResponse(SessionResponse):
    state: Dict[str, Any] = Field(default_factory=dict, description="Full conversation context")
    history: List[Dict[str, Any]] = Field(default_factory=list)


# ============================================================================
# Helpers
# ============================================================================


def _get_session(session_id: str) -> QuickPlanOrchestrator:
    orchestrator = _sessions.get(session_id)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_id} not found",
        )
    return orchestrator


def _view(orchestrator: QuickPlanOrchestrator) -> SessionResponse:
    question = orchestrator.get_current_question()
    return SessionResponse(
        session_id=orchestrator.session_id,
        phase=orchestrator.get_phase(),
        question=question.model_dump(mode="json") if question else None,
        messages=orchestrator.get_messages(),
        can_go_back=orchestrator.can_go_back(),
        trip_id=orchestrator.trip_id,
    )


def _validation_error(e: ValidationError) -> HTTPException:
    code = status.HTTP_409_CONFLICT if isinstance(e, DuplicateSubmissionError) else status.HTTP_422_UNPROCESSABLE_ENTITY
    return HTTPException(
        status_code=code,
        detail={"code": e.code, "message": e.message, "field": e.field},
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/sessions", response_model=SessionResponse)
async def start_session(
    request: Optional[StartSessionRequest] = None,
    config: OrchestratorConfig = Depends(get_config),
    gateway=Depends(get_gateway),
    store: SnapshotStore = Depends(get_store),
) -> SessionResponse:
    """Start a conversation and return the first question."""
    session_id = request.session_id if request else None
    if session_id and session_id in _sessions:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Session {session_id} already exists",
        )

    orchestrator = QuickPlanOrchestrator(gateway, config=config, store=store, session_id=session_id)
    _log = f"[session={orchestrator.session_id}] [graph=quick-plan] [api=start] "
    _sessions[orchestrator.session_id] = orchestrator

    await orchestrator.select_next_question()
    logger.info(f"{_log}Session started | phase={orchestrator.get_phase()}")
    return _view(orchestrator)


@router.get("/sessions/{session_id}", response_model=SessionStateResponse)
async def get_session(session_id: str) -> SessionStateResponse:
    orchestrator = _get_session(session_id)
    view = _view(orchestrator)
    return SessionStateResponse(
        **view.model_dump(),
        state=orchestrator.get_state(),
        history=orchestrator.get_question_history(),
    )


@router.post("/sessions/{session_id}/respond", response_model=SessionResponse)
async def respond(session_id: str, request: RespondRequest) -> SessionResponse:
    """Answer the pending question and return the next one."""
    orchestrator = _get_session(session_id)
    _log = f"[session={session_id}] [graph=quick-plan] [api=respond] "

    try:
        question = orchestrator.get_current_question()
        await orchestrator.handle_response(request.question_id, request.value)
        if request.note and question is not None:
            orchestrator.add_user_note(question.field, request.note)
    except ValidationError as e:
        logger.info(f"{_log}Rejected answer | code={e.code}, field={e.field}: {e.message}")
        raise _validation_error(e)

    logger.info(f"{_log}Answer accepted | phase={orchestrator.get_phase()}")
    return _view(orchestrator)


@router.post("/sessions/{session_id}/skip", response_model=SessionResponse)
async def skip(session_id: str) -> SessionResponse:
    orchestrator = _get_session(session_id)
    question = orchestrator.get_current_question()
    if question is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": "QP_400", "message": "There is no pending question to skip", "field": None},
        )
    try:
        await orchestrator.handle_response(question.id, SKIP)
    except ValidationError as e:
        raise _validation_error(e)
    return _view(orchestrator)


@router.post("/sessions/{session_id}/back", response_model=SessionResponse)
async def go_back(session_id: str) -> SessionResponse:
    """Undo the last answer and re-ask it."""
    orchestrator = _get_session(session_id)
    try:
        await orchestrator.go_back_and_select()
    except ValidationError as e:
        raise _validation_error(e)
    return _view(orchestrator)


@router.post("/sessions/{session_id}/reset", response_model=SessionResponse)
async def reset(session_id: str) -> SessionResponse:
    orchestrator = _get_session(session_id)
    try:
        await orchestrator.reset_and_select()
    except ValidationError as e:
        raise _validation_error(e)
    return _view(orchestrator)


@router.post("/sessions/{session_id}/finalize", response_model=SessionResponse)
async def finalize(session_id: str) -> SessionResponse:
    """Save the completed plan. Safe to call again after a failure."""
    orchestrator = _get_session(session_id)
    _log = f"[session={session_id}] [graph=quick-plan] [api=finalize] "

    try:
        trip_id = await orchestrator.finalize()
    except ValidationError as e:
        raise _validation_error(e)
    except PersistenceFailure as e:
        logger.error(f"{_log}Snapshot write failed: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": e.code, "message": e.message, "retryable": e.retryable},
        )

    logger.info(f"{_log}Trip saved | trip_id={trip_id}")
    return _view(orchestrator)


@router.delete("/sessions/{session_id}")
async def end_session(session_id: str) -> Dict[str, Any]:
    orchestrator = _get_session(session_id)
    await orchestrator.aclose(close_gateway=False)
    del _sessions[session_id]
    return {"session_id": session_id, "deleted": True}
