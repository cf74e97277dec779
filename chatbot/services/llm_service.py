import logging
from typing import Any, List, Optional

from google import genai
from google.genai import types              # pydantic config classes

from ..exceptions import InferenceError
from ..models import Turn
from ..settings import Settings

logger = logging.getLogger(__name__)


def extract_text(resp: Any) -> Optional[str]:
    """First text part of the first candidate, or None if the shape is off."""
    candidates = getattr(resp, "candidates", None)
    if not candidates:
        return None
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) if content is not None else None
    if not parts:
        return None
    return getattr(parts[0], "text", None) or None


class LLMService:
    """Wrapper around the Google Gen AI SDK (generateContent only)."""

    def __init__(self, settings: Settings, client: Optional[genai.Client] = None) -> None:
        self.model_name = settings.model_name

        if client is None:
            logger.info("Initialising Google Gen AI client …")
            # HttpOptions.timeout is in milliseconds
            http_options = types.HttpOptions(timeout=int(settings.inference_timeout_seconds * 1000))
            if settings.use_vertex:
                client = genai.Client(
                    vertexai=True,
                    project=settings.project_id or settings.firestore_project,
                    location=settings.model_location,
                    http_options=http_options,
                )
            else:
                client = genai.Client(api_key=settings.gemini_api_key, http_options=http_options)

        # One client for the whole lifetime of the service
        self.client = client
        logger.info(f"Generation model: {self.model_name}")

    @staticmethod
    def to_contents(turns: List[Turn]) -> List[types.Content]:
        return [
            types.Content(role=turn.role, parts=[types.Part(text=turn.text)])
            for turn in turns
        ]

    async def generate(self, turns: List[Turn]) -> Optional[str]:
        """Send *turns* and return the generated text.

        Returns None when the response carries no usable text. Raises
        InferenceError when the endpoint cannot be reached, times out or
        answers with an error status.
        """
        try:
            resp = await self.client.aio.models.generate_content(
                model=self.model_name,
                contents=self.to_contents(turns),
            )
        except Exception as exc:
            logger.error("Gen AI error: %s", exc, exc_info=True)
            raise InferenceError(str(exc)) from exc

        text = extract_text(resp)
        if text is None:
            logger.warning("Empty or unexpected response: %s", resp)
        return text
