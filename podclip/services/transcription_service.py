"""
Transcription client for the AssemblyAI REST API.

Flow:
1. Upload the extracted clip
2. Create a transcript with speaker labels
3. Poll until it is completed or errored
4. Convert utterances and words to caption models (milliseconds)
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Optional

import httpx

from podclip.captions.models import Transcript, Utterance, Word
from podclip.exceptions import TransientStageError

logger = logging.getLogger(__name__)


class TranscriptionService:
    """Uploads audio, requests a transcript and waits for it."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.assemblyai.com/v2",
        poll_interval_s: float = 3.0,
        timeout_s: float = 300.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.poll_interval_s = poll_interval_s
        self.timeout_s = timeout_s
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> "TranscriptionService":
        return cls(
            api_key=settings.assemblyai_api_key,
            base_url=settings.assemblyai_base_url,
            poll_interval_s=settings.transcription_poll_interval_s,
            timeout_s=settings.transcription_timeout_s,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"authorization": self.api_key},
                timeout=httpx.Timeout(60.0, connect=10.0),
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def transcribe(self, audio_path: Path, smart_features: bool = False) -> Transcript:
        """Transcribe a local audio file."""
        started = time.monotonic()
        try:
            upload_url = await self._upload(audio_path)
            transcript_id = await self._create(upload_url, smart_features)
            data = await self._wait_until_ready(transcript_id)
        except httpx.HTTPError as e:
            raise TransientStageError(f"Transcription request failed: {e}", stage="transcribing") from e

        transcript = self._to_transcript(data)
        logger.info(
            f"[TRANSCRIBE] {transcript_id}: {len(transcript.utterances)} utterances, "
            f"{len(transcript.words)} words in {time.monotonic() - started:.1f}s"
        )
        return transcript

    async def _upload(self, audio_path: Path) -> str:
        content = await asyncio.to_thread(audio_path.read_bytes)
        response = await self._get_client().post(f"{self.base_url}/upload", content=content)
        response.raise_for_status()
        return response.json()["upload_url"]

    async def _create(self, upload_url: str, smart_features: bool) -> str:
        payload: dict[str, Any] = {
            "audio_url": upload_url,
            "speaker_labels": True,
            "speakers_expected": 2,
            "punctuate": True,
            "format_text": True,
        }
        if smart_features:
            payload.update(
                {
                    "auto_highlights": True,
                    "sentiment_analysis": True,
                    "entity_detection": True,
                }
            )
        response = await self._get_client().post(f"{self.base_url}/transcript", json=payload)
        response.raise_for_status()
        return response.json()["id"]

    async def _wait_until_ready(self, transcript_id: str) -> dict[str, Any]:
        deadline = time.monotonic() + self.timeout_s
        while True:
            response = await self._get_client().get(f"{self.base_url}/transcript/{transcript_id}")
            response.raise_for_status()
            data = response.json()
            status = data.get("status")
            if status == "completed":
                return data
            if status == "error":
                raise TransientStageError(
                    f"Transcription failed: {data.get('error', 'unknown error')}", stage="transcribing"
                )
            if time.monotonic() >= deadline:
                raise TransientStageError(
                    f"Transcription {transcript_id} not ready after {self.timeout_s:.0f}s", stage="transcribing"
                )
            await asyncio.sleep(self.poll_interval_s)

    @staticmethod
    def _to_transcript(data: dict[str, Any]) -> Transcript:
        words = [
            Word(
                text=w["text"],
                start_ms=int(w["start"]),
                end_ms=int(w["end"]),
                confidence=float(w.get("confidence", 1.0)),
                speaker=w.get("speaker"),
            )
            for w in data.get("words") or []
        ]
        utterances = [
            Utterance(
                speaker=str(u.get("speaker") or "A"),
                start_ms=int(u["start"]),
                end_ms=int(u["end"]),
                text=u.get("text", ""),
            )
            for u in data.get("utterances") or []
        ]
        # Without speaker labels the whole text is one utterance
        if not utterances and words:
            utterances = [
                Utterance(
                    speaker="A",
                    start_ms=words[0].start_ms,
                    end_ms=words[-1].end_ms,
                    text=data.get("text") or " ".join(w.text for w in words),
                )
            ]
        duration = data.get("audio_duration")
        return Transcript(
            utterances=utterances,
            words=words,
            transcript_id=data.get("id"),
            duration_ms=int(duration * 1000) if duration else None,
        )


class TranscriberFactory:
    """Builds the transcription client on first use, and never without an API key."""

    def __init__(self, settings):
        self.settings = settings
        self._instance: Optional[TranscriptionService] = None

    def __call__(self) -> Optional[TranscriptionService]:
        if not self.settings.assemblyai_api_key:
            return None
        if self._instance is None:
            self._instance = TranscriptionService.from_settings(self.settings)
        return self._instance

    async def close(self) -> None:
        if self._instance is not None:
            await self._instance.close()
            self._instance = None
