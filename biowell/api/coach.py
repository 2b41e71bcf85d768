import base64
import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from biowell.api.auth import get_current_user
from biowell.api.chat_history import get_or_create_chat_session, persist_chat_turn, recent_turns
from biowell.core.context_builder import build_user_context, render_context_prompt
from biowell.core.persona import COACH_SYSTEM_PROMPT, FALLBACK_REPLY, WELCOME_MESSAGE, question_set
from biowell.core.safety import (
    SUPPLEMENT_FLAG,
    detect_urgent_flags,
    emergency_reply,
    has_supplement_topic,
    supplement_caution_text,
)
from biowell.db.models import User
from biowell.db.session import get_db
from biowell.services.llm import LLMClient, LLMConfigError, LLMRequestError, get_llm_client
from biowell.services.speech import SpeechClient, SpeechRequestError, get_speech_client

router = APIRouter(prefix="/coach", tags=["coach"])
logger = logging.getLogger("uvicorn.error")
COACH_HISTORY_LIMIT = int(os.getenv("COACH_HISTORY_LIMIT", "10"))


class CoachChatRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    message: str = Field(min_length=1, max_length=2000)
    session_id: Optional[int] = None


class CoachVoiceRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    transcript: str = Field(min_length=1, max_length=2000)
    session_id: Optional[int] = None
    speak: bool = False
    voice_id: Optional[str] = Field(default=None, max_length=64)


class CoachReply(BaseModel):
    answer: str
    session_id: int
    turn_id: int
    context_enhanced: bool
    safety_flags: list[str] = Field(default_factory=list)
    error_flag: Optional[str] = None


class CoachVoiceReply(CoachReply):
    transcript: str
    audio_base64: Optional[str] = None
    speech_error: Optional[str] = None


class SuggestedQuestion(BaseModel):
    text: str
    category: str


class SuggestedQuestionsResponse(BaseModel):
    index: int
    welcome_message: str
    questions: list[SuggestedQuestion]


def _error_flag(exc: LLMRequestError) -> str:
    if isinstance(exc, LLMConfigError):
        return "llm_config_missing"
    if exc.status_code == 401:
        return "llm_auth_error"
    if exc.status_code == 429:
        return "llm_rate_limited"
    return "llm_unavailable"


def _build_messages(system_prompt: str, history: list, message: str) -> list[dict[str, str]]:
    messages = [{"role": "system", "content": system_prompt}]
    for turn in history:
        messages.append({"role": "user", "content": turn.message})
        messages.append({"role": "assistant", "content": turn.response})
    messages.append({"role": "user", "content": message})
    return messages


def run_coach_turn(
    db: Session,
    user: User,
    message: str,
    session_id: Optional[int],
    llm_client: LLMClient,
) -> CoachReply:
    chat_session = get_or_create_chat_session(db, user_id=user.id, message=message, session_id=session_id)

    safety_flags = detect_urgent_flags(message)
    error_flag: Optional[str] = None
    context_enhanced = False
    if safety_flags:
        answer = emergency_reply()
    else:
        context = build_user_context(db=db, user_id=user.id)
        system_prompt = COACH_SYSTEM_PROMPT + render_context_prompt(context)
        messages = _build_messages(system_prompt, recent_turns(db, chat_session, COACH_HISTORY_LIMIT), message)
        try:
            answer = llm_client.chat(db=db, user_id=user.id, messages=messages)
            context_enhanced = True
        except LLMRequestError as exc:
            logger.exception("coach_llm_request_error user_id=%s detail=%s", user.id, str(exc))
            error_flag = _error_flag(exc)
            answer = FALLBACK_REPLY
        except Exception as exc:
            logger.exception("coach_unhandled_error user_id=%s detail=%s", user.id, str(exc))
            error_flag = "llm_unavailable"
            answer = FALLBACK_REPLY

        if has_supplement_topic(message):
            safety_flags = [*safety_flags, SUPPLEMENT_FLAG]
            answer = f"{answer}\n\n{supplement_caution_text()}"

    turn = persist_chat_turn(
        db,
        user_id=user.id,
        chat_session=chat_session,
        message=message,
        response=answer,
        context_enhanced=context_enhanced,
    )
    return CoachReply(
        answer=answer,
        session_id=chat_session.id,
        turn_id=turn.id,
        context_enhanced=context_enhanced,
        safety_flags=safety_flags,
        error_flag=error_flag,
    )


@router.post("/chat", response_model=CoachReply, status_code=status.HTTP_200_OK)
def coach_chat(
    payload: CoachChatRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    llm_client: LLMClient = Depends(get_llm_client),
) -> CoachReply:
    return run_coach_turn(db, user, payload.message, payload.session_id, llm_client)


@router.post("/voice", response_model=CoachVoiceReply, status_code=status.HTTP_200_OK)
def coach_voice(
    payload: CoachVoiceRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    llm_client: LLMClient = Depends(get_llm_client),
    speech_client: SpeechClient = Depends(get_speech_client),
) -> CoachVoiceReply:
    transcript = payload.transcript
    reply = run_coach_turn(db, user, transcript, payload.session_id, llm_client)
    response = CoachVoiceReply(**reply.model_dump(), transcript=transcript)
    if not payload.speak:
        return response

    try:
        audio = speech_client.synthesize(reply.answer, voice_id=payload.voice_id)
        response.audio_base64 = base64.b64encode(audio).decode("ascii")
    except SpeechRequestError as exc:
        logger.exception("coach_voice_speech_error user_id=%s status=%s detail=%s", user.id, exc.status_code, str(exc))
        response.speech_error = str(exc)
    return response


@router.get("/suggested-questions", response_model=SuggestedQuestionsResponse)
def suggested_questions(index: int = Query(default=0, ge=0)) -> SuggestedQuestionsResponse:
    position, questions = question_set(index)
    return SuggestedQuestionsResponse(
        index=position,
        welcome_message=WELCOME_MESSAGE,
        questions=[SuggestedQuestion(**q) for q in questions],
    )
