"""LLM service for Google Gemini integration."""

import asyncio
import logging

from google import genai
from google.genai import types

from audit_engine.config import Settings, get_settings

logger = logging.getLogger(__name__)


class LLMService:
    """Service for Google Gemini LLM operations."""

    def __init__(self, settings: Settings | None = None):
        settings = settings or get_settings()
        self.client = genai.Client(api_key=settings.gemini_api_key)
        self.model = settings.gemini_model
        self.max_tokens = settings.llm_max_tokens
        self.temperature = settings.llm_temperature

    async def generate(
        self,
        prompt: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
        system_prompt: str | None = None,
    ) -> str:
        """Generate text completion using Gemini.

        Args:
            prompt: User prompt
            max_tokens: Maximum tokens to generate, defaults to the configured limit
            temperature: Sampling temperature (0-1), defaults to the configured value
            system_prompt: Optional system prompt

        Returns:
            Generated text, possibly empty
        """
        try:
            config = types.GenerateContentConfig(
                max_output_tokens=max_tokens if max_tokens is not None else self.max_tokens,
                temperature=temperature if temperature is not None else self.temperature,
                system_instruction=system_prompt,
                response_mime_type="application/json",
            )

            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=self.model,
                contents=prompt,
                config=config,
            )
            return response.text or ""
        except Exception as e:
            logger.error(f"LLM generation failed: {e}")
            raise
