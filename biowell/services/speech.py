import os
from typing import Optional, Protocol

import httpx

ELEVENLABS_TTS_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"
ELEVENLABS_MODEL_ID = os.getenv("ELEVENLABS_MODEL_ID", "eleven_monolingual_v1")
ELEVENLABS_DEFAULT_VOICE_ID = os.getenv("ELEVENLABS_DEFAULT_VOICE_ID", "21m00Tcm4TlvDq8ikWAM")
SPEECH_TIMEOUT_SECONDS = float(os.getenv("SPEECH_TIMEOUT_SECONDS", "30"))
MAX_TEXT_LENGTH = 300
DEFAULT_STABILITY = 0.5
DEFAULT_SIMILARITY_BOOST = 0.75


class SpeechRequestError(RuntimeError):
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.provider = "elevenlabs"
        self.status_code = status_code


def clip_text(text: str, limit: int = MAX_TEXT_LENGTH) -> str:
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or ""
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, dict):
        return str(detail.get("message") or "")
    return str(detail or "")


class SpeechClient(Protocol):
    def synthesize(
        self,
        text: str,
        voice_id: Optional[str] = None,
        stability: Optional[float] = None,
        similarity_boost: Optional[float] = None,
    ) -> bytes:
        ...


class ElevenLabsClient:
    def synthesize(
        self,
        text: str,
        voice_id: Optional[str] = None,
        stability: Optional[float] = None,
        similarity_boost: Optional[float] = None,
    ) -> bytes:
        api_key = os.getenv("ELEVENLABS_API_KEY", "").strip()
        if not api_key:
            raise SpeechRequestError(
                "ElevenLabs API key not configured. Set ELEVENLABS_API_KEY.", status_code=500
            )

        body = {
            "text": clip_text(text),
            "model_id": ELEVENLABS_MODEL_ID,
            "voice_settings": {
                "stability": DEFAULT_STABILITY if stability is None else stability,
                "similarity_boost": DEFAULT_SIMILARITY_BOOST if similarity_boost is None else similarity_boost,
            },
        }
        try:
            response = httpx.post(
                ELEVENLABS_TTS_URL.format(voice_id=voice_id or ELEVENLABS_DEFAULT_VOICE_ID),
                headers={
                    "Accept": "audio/mpeg",
                    "Content-Type": "application/json",
                    "xi-api-key": api_key,
                },
                json=body,
                timeout=SPEECH_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as exc:
            raise SpeechRequestError(f"Failed to generate speech: {str(exc)[:220]}", status_code=502) from exc

        if response.status_code == 401:
            raise SpeechRequestError("Invalid ElevenLabs API key. Please check your configuration.", 401)
        if response.status_code == 429:
            raise SpeechRequestError("ElevenLabs rate limit exceeded. Please try again later.", 429)
        if response.status_code >= 400:
            detail = _error_detail(response)
            raise SpeechRequestError(
                detail or f"ElevenLabs API error: {response.status_code}", response.status_code
            )
        return response.content


def get_speech_client() -> SpeechClient:
    return ElevenLabsClient()
