"""Voice transcription through Groq's Whisper endpoint."""

from __future__ import annotations

from pathlib import Path

import httpx
from loguru import logger


class GroqTranscriptionProvider:
    """
    Speech-to-text backed by the Groq Whisper API.

    Failures are logged and reported as an empty transcript so a voice
    message still reaches the agent as a placeholder.
    """

    API_URL = "https://api.groq.com/openai/v1/audio/transcriptions"
    DEFAULT_MODEL = "whisper-large-v3"

    def __init__(self, api_key: str | None = None, model: str | None = None, timeout: float = 60.0) -> None:
        self.api_key = api_key
        self.model = model or self.DEFAULT_MODEL
        self.timeout = timeout

    async def transcribe(self, file_path: str | Path) -> str:
        """
        Transcribe an audio file.

        Args:
            file_path: Path to the audio file.

        Returns:
            The transcript, or an empty string on failure.
        """
        if not self.api_key:
            logger.warning("Groq API key not configured for transcription")
            return ""

        path = Path(file_path)
        if not path.is_file():
            logger.error(f"Audio file not found: {path}")
            return ""

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                with path.open("rb") as fp:
                    response = await client.post(
                        self.API_URL,
                        headers={"Authorization": f"Bearer {self.api_key}"},
                        files={"file": (path.name, fp)},
                        data={"model": self.model},
                    )
            response.raise_for_status()
            return response.json().get("text", "")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Groq transcription failed: {e}")
            return ""
