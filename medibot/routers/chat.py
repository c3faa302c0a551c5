# medibot/routers/chat.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

import structlog

from .. import crud, models, schemas, security
from ..database import get_db
from ..exceptions import InvalidTransition, NotFound, PermissionDenied
from ..services.triage_service import bot_reply_for, classify_message

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/chat",
    tags=["Chat"],
    responses={404: {"description": "Not found"}},
)


def _owned_session(db: Session, session_id: int, actor: schemas.Actor) -> models.ChatSession:
    db_session = crud.get_chat_session(db, session_id)
    if db_session is None:
        raise NotFound("Chat session", session_id)
    if not actor.is_admin and db_session.patient_id != actor.user_id:
        raise PermissionDenied("You do not have access to this chat session.")
    return db_session


@router.post("/classify", response_model=schemas.TriageResponse)
def classify(
    payload: schemas.ChatMessageCreate,
    actor: schemas.Actor = Depends(security.get_current_actor),
):
    """Severity and booking suggestion for a single message. Nothing is stored."""
    result = classify_message(payload.message)
    return schemas.TriageResponse(
        severity=result.severity,
        appointment_needed=result.appointment_needed,
        matched_keywords=result.matched_keywords,
    )


@router.post("/sessions", response_model=schemas.ChatSessionResponse, status_code=status.HTTP_201_CREATED)
def start_session(
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.get_current_actor),
):
    return crud.create_chat_session(db, actor.user_id)


@router.get("/sessions", response_model=List[schemas.ChatSessionResponse])
def list_sessions(
    session_status: Optional[models.ChatSessionStatus] = Query(None, alias="status"),
    limit: Optional[int] = Query(None, ge=1, le=200),
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.get_current_actor),
):
    return crud.get_chat_sessions(db, actor.user_id, status=session_status, limit=limit)


@router.get("/sessions/{session_id}", response_model=schemas.ChatSessionResponse)
def read_session(
    session_id: int,
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.get_current_actor),
):
    return _owned_session(db, session_id, actor)


@router.post("/sessions/{session_id}/end", response_model=schemas.ChatSessionResponse)
def end_session(
    session_id: int,
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.get_current_actor),
):
    db_session = _owned_session(db, session_id, actor)
    if db_session.status == models.ChatSessionStatus.completed:
        return db_session
    return crud.end_chat_session(db, db_session)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(
    session_id: int,
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.get_current_actor),
):
    crud.delete_chat_session(db, _owned_session(db, session_id, actor))


@router.post("/sessions/{session_id}/messages", response_model=schemas.ChatExchangeResponse,
             status_code=status.HTTP_201_CREATED)
def post_message(
    session_id: int,
    payload: schemas.ChatMessageCreate,
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.get_current_actor),
):
    """Store the user's message with its triage result, then the canned bot reply."""
    db_session = _owned_session(db, session_id, actor)
    if db_session.status != models.ChatSessionStatus.active:
        raise InvalidTransition(session_id, db_session.status.value, "message")

    result = classify_message(payload.message)
    user_message = crud.save_chat_message(
        db, session_id, payload.message, models.ChatSender.user,
        severity=result.severity,
        appointment_suggested=result.appointment_needed,
    )
    bot_message = crud.save_chat_message(
        db, session_id, bot_reply_for(result.severity), models.ChatSender.bot,
        severity=result.severity,
        appointment_suggested=result.appointment_needed,
    )
    logger.info(
        "chat_message_triaged",
        session_id=session_id,
        severity=result.severity.value,
        appointment_suggested=result.appointment_needed,
    )
    return schemas.ChatExchangeResponse(
        triage=schemas.TriageResponse(
            severity=result.severity,
            appointment_needed=result.appointment_needed,
            matched_keywords=result.matched_keywords,
        ),
        user_message=schemas.ChatMessageResponse.model_validate(user_message),
        bot_message=schemas.ChatMessageResponse.model_validate(bot_message),
    )


@router.get("/sessions/{session_id}/messages", response_model=List[schemas.ChatMessageResponse])
def list_messages(
    session_id: int,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.get_current_actor),
):
    _owned_session(db, session_id, actor)
    return crud.get_chat_messages(db, session_id, limit=limit, offset=offset)
