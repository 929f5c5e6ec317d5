"""Speech-to-text adapter that always yields a usable transcript."""

from __future__ import annotations

from pathlib import Path
import tempfile
from typing import Optional

from src.ai.providers.base import AIProvider
from src.ai.providers.factory import get_ai_provider
from src.ai.results import StageResult, fallback, success
from src.core.config import get_settings
from src.core.errors import AdapterFailure, FAILURE_UNEXPECTED
from src.core.i18n import normalize_language, translate
from src.core.logger import get_logger


STAGE = "transcription"

_AUDIO_SIGNATURES = (
    (b"RIFF", "wav"),
    (b"OggS", "ogg"),
    (b"fLaC", "flac"),
    (b"ID3", "mp3"),
    (b"\xff\xfb", "mp3"),
    (b"\x1a\x45\xdf\xa3", "webm"),
)

logger = get_logger("chefsocial.ai.transcription")


def guess_audio_suffix(audio: bytes) -> str:
    for signature, suffix in _AUDIO_SIGNATURES:
        if audio.startswith(signature):
            return suffix
    if audio[4:8] == b"ftyp":
        return "m4a"
    # Browser recorders default to webm/opus.
    return "webm"


def fallback_transcript(category: str, language: str) -> str:
    return translate(f"transcription.{category}", language)


async def transcribe_audio(
    audio: bytes,
    *,
    language: str,
    provider: Optional[AIProvider] = None,
) -> StageResult[str]:
    """Transcribe audio bytes; failures come back as a language-matched fallback sentence."""

    language = normalize_language(language)
    if not audio:
        return fallback(STAGE, fallback_transcript(FAILURE_UNEXPECTED, language), "empty_audio")
    if len(audio) > get_settings().max_audio_bytes:
        logger.warning("transcription_audio_too_large", size_bytes=len(audio))
        return fallback(STAGE, fallback_transcript(FAILURE_UNEXPECTED, language), "audio_too_large")

    active_provider = provider or get_ai_provider()
    try:
        # The directory (and the audio in it) is removed on every exit path, cancellation included.
        with tempfile.TemporaryDirectory(prefix="chefsocial-audio-") as tmp_dir:
            audio_path = Path(tmp_dir) / f"submission.{guess_audio_suffix(audio)}"
            audio_path.write_bytes(audio)
            text = await active_provider.transcribe(audio_path=audio_path, language=language)
    except AdapterFailure as exc:
        logger.warning(
            "transcription_failed",
            provider=active_provider.provider_name,
            category=exc.category,
            error=str(exc),
        )
        return fallback(STAGE, fallback_transcript(exc.category, language), exc.category)
    except Exception as exc:
        logger.error(
            "transcription_unexpected_error",
            provider=active_provider.provider_name,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return fallback(STAGE, fallback_transcript(FAILURE_UNEXPECTED, language), FAILURE_UNEXPECTED)

    text = (text or "").strip()
    if not text:
        return fallback(STAGE, fallback_transcript(FAILURE_UNEXPECTED, language), "empty_transcript")
    return success(STAGE, text)
