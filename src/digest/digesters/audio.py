# src/digest/digesters/audio.py — v1
"""Digesters for audio and video: transcription, speaker embeddings and
transcript summaries."""

from __future__ import annotations

import json
import logging

from digestkit.core.models import Digest, DigestInput, FileRecord
from digestkit.digest.base_digester import (
    BaseDigester,
    find_digest,
    is_audio_or_video,
    upstream_changed,
)
from digestkit.vendors.models import TranscriptResult

logger = logging.getLogger(__name__)

# Shorter speakers are mostly noise
MIN_SPEAKER_DURATION_S = 2.0


def _load_transcript(existing: list[Digest]) -> TranscriptResult | None:
    row = find_digest(existing, "speech-recognition", status="completed")
    if row is None or not row.content:
        return None
    try:
        return TranscriptResult.model_validate_json(row.content)
    except ValueError:
        logger.warning("Unparseable transcript for %s", row.file_path)
        return None


class SpeechRecognitionDigester(BaseDigester):
    """Transcribes speech with timed, diarized segments."""

    @property
    def name(self) -> str:
        return "speech-recognition"

    async def can_digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        return is_audio_or_video(file)

    async def digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> list[DigestInput] | None:
        media = self.services.require_media()
        result = await self.services.call(
            media.transcribe, self.services.absolute_path(file_path), operation="transcribe"
        )
        return [DigestInput(digester=self.name, content=result.model_dump_json())]


class SpeakerEmbeddingDigester(BaseDigester):
    """Extracts one voice embedding per speaker found in the transcript."""

    @property
    def name(self) -> str:
        return "speaker-embedding"

    async def can_digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        if not is_audio_or_video(file):
            return False
        transcript = _load_transcript(existing)
        return transcript is not None and any(s.speaker for s in transcript.segments)

    async def digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> list[DigestInput] | None:
        transcript = _load_transcript(existing)
        if transcript is None:
            return None
        media = self.services.require_media()
        embeddings = await self.services.call(
            media.speaker_embeddings,
            self.services.absolute_path(file_path),
            transcript,
            operation="speaker_embeddings",
        )
        kept = [e for e in embeddings if e.duration_s >= MIN_SPEAKER_DURATION_S]
        content = {
            "speakersProcessed": len(kept),
            "speakersSkipped": len(embeddings) - len(kept),
            "speakers": [
                {
                    "speaker": e.speaker,
                    "durationS": e.duration_s,
                    "dimensions": len(e.embedding),
                }
                for e in kept
            ],
        }
        return [DigestInput(digester=self.name, content=json.dumps(content))]

    async def should_reprocess_completed(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        return upstream_changed([self.name], ("speech-recognition",), existing)


class SpeechRecognitionSummaryDigester(BaseDigester):
    """Summarizes the transcript with the text model."""

    @property
    def name(self) -> str:
        return "speech-recognition-summary"

    async def can_digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        return is_audio_or_video(file)

    async def digest(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> list[DigestInput] | None:
        transcript = _load_transcript(existing)
        if transcript is None:
            return None
        text = transcript.text.strip() or " ".join(
            s.text.strip() for s in transcript.segments if s.text.strip()
        )
        if not text:
            return [DigestInput(digester=self.name, content=None)]
        model = self.services.require_text_model()
        result = await self.services.call(model.summarize, text, operation="summarize")
        return [
            DigestInput(
                digester=self.name, content=json.dumps({"summary": result.summary})
            )
        ]

    async def should_reprocess_completed(
        self, file_path: str, file: FileRecord, existing: list[Digest]
    ) -> bool:
        return upstream_changed([self.name], ("speech-recognition",), existing)
