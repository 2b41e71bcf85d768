from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from biowell.api.auth import get_current_user
from biowell.db.models import ChatHistory, ChatSession, User
from biowell.db.session import get_db

router = APIRouter(prefix="/coach", tags=["coach"])


class SessionItem(BaseModel):
    session_id: int
    title: str
    message_count: int
    last_message_at: str


class SessionListResponse(BaseModel):
    items: list[SessionItem]


class TurnItem(BaseModel):
    id: int
    session_id: int
    message: str
    response: str
    context_enhanced: bool
    created_at: str


class SessionMessagesResponse(BaseModel):
    session_id: int
    title: str
    turns: list[TurnItem]


class HistoryResponse(BaseModel):
    items: list[TurnItem]


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _turn_item(row: ChatHistory) -> TurnItem:
    return TurnItem(
        id=row.id,
        session_id=row.session_id,
        message=row.message,
        response=row.response,
        context_enhanced=row.context_enhanced,
        created_at=_iso(row.created_at),
    )


def _owned_session(db: Session, user_id: int, session_id: int) -> ChatSession:
    row = db.query(ChatSession).filter(ChatSession.id == session_id, ChatSession.user_id == user_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Chat session not found")
    return row


def get_or_create_chat_session(
    db: Session,
    *,
    user_id: int,
    message: str,
    session_id: Optional[int],
) -> ChatSession:
    if session_id is not None:
        return _owned_session(db, user_id, session_id)

    first_line = " ".join((message or "").strip().split())
    title = first_line[:90] if first_line else "New Chat"
    if len(first_line) > 90:
        title = f"{title.rstrip()}..."
    now = datetime.now(timezone.utc)
    chat_session = ChatSession(
        user_id=user_id,
        title=title or "New Chat",
        created_at=now,
        updated_at=now,
        last_message_at=now,
    )
    db.add(chat_session)
    db.flush()
    return chat_session


def recent_turns(db: Session, chat_session: ChatSession, limit: int) -> list[ChatHistory]:
    rows = (
        db.query(ChatHistory)
        .filter(ChatHistory.session_id == chat_session.id)
        .order_by(ChatHistory.created_at.desc(), ChatHistory.id.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(rows))


def persist_chat_turn(
    db: Session,
    *,
    user_id: int,
    chat_session: ChatSession,
    message: str,
    response: str,
    context_enhanced: bool,
) -> ChatHistory:
    now = datetime.now(timezone.utc)
    row = ChatHistory(
        user_id=user_id,
        session_id=chat_session.id,
        message=message[:8000],
        response=response[:20000],
        context_enhanced=context_enhanced,
        created_at=now,
    )
    chat_session.last_message_at = now
    chat_session.updated_at = now
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SessionListResponse:
    rows = (
        db.query(
            ChatSession.id.label("session_id"),
            ChatSession.title,
            ChatSession.last_message_at,
            func.count(ChatHistory.id).label("message_count"),
        )
        .outerjoin(ChatHistory, ChatHistory.session_id == ChatSession.id)
        .filter(ChatSession.user_id == user.id)
        .group_by(ChatSession.id)
        .order_by(ChatSession.last_message_at.desc(), ChatSession.id.desc())
        .all()
    )
    items = [
        SessionItem(
            session_id=int(row.session_id),
            title=row.title,
            message_count=int(row.message_count or 0),
            last_message_at=_iso(row.last_message_at),
        )
        for row in rows
    ]
    return SessionListResponse(items=items)


@router.get("/sessions/{session_id}/messages", response_model=SessionMessagesResponse)
def get_session_messages(
    session_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> SessionMessagesResponse:
    chat_session = _owned_session(db, user.id, session_id)
    rows = (
        db.query(ChatHistory)
        .filter(ChatHistory.session_id == chat_session.id)
        .order_by(ChatHistory.created_at.asc(), ChatHistory.id.asc())
        .all()
    )
    return SessionMessagesResponse(
        session_id=chat_session.id, title=chat_session.title, turns=[_turn_item(row) for row in rows]
    )


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(
    session_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> None:
    db.delete(_owned_session(db, user.id, session_id))
    db.commit()


@router.get("/history", response_model=HistoryResponse)
def chat_history(
    limit: int = Query(default=20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> HistoryResponse:
    rows = (
        db.query(ChatHistory)
        .filter(ChatHistory.user_id == user.id)
        .order_by(ChatHistory.created_at.desc(), ChatHistory.id.desc())
        .limit(limit)
        .all()
    )
    return HistoryResponse(items=[_turn_item(row) for row in rows])
