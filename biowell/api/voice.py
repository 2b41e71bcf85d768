import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field

from biowell.api.auth import get_current_user
from biowell.db.models import User
from biowell.services.speech import SpeechClient, SpeechRequestError, get_speech_client

router = APIRouter(prefix="/voice", tags=["voice"])
logger = logging.getLogger("uvicorn.error")


class SpeechRequest(BaseModel):
    text: str = Field(min_length=1, max_length=5000)
    voice_id: Optional[str] = Field(default=None, max_length=64)
    stability: Optional[float] = Field(default=None, ge=0, le=1)
    similarity_boost: Optional[float] = Field(default=None, ge=0, le=1)


@router.post("/speech", response_class=Response)
def text_to_speech(
    payload: SpeechRequest,
    user: User = Depends(get_current_user),
    speech_client: SpeechClient = Depends(get_speech_client),
) -> Response:
    if not payload.text.strip():
        raise HTTPException(status_code=422, detail="Text is required")
    try:
        audio = speech_client.synthesize(
            payload.text,
            voice_id=payload.voice_id,
            stability=payload.stability,
            similarity_boost=payload.similarity_boost,
        )
    except SpeechRequestError as exc:
        logger.exception("voice_speech_error user_id=%s status=%s detail=%s", user.id, exc.status_code, str(exc))
        raise HTTPException(status_code=exc.status_code, detail=str(exc))
    return Response(
        content=audio,
        media_type="audio/mpeg",
        headers={"Cache-Control": "public, max-age=86400"},
    )
