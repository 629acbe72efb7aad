"""Gemini generation provider implementation."""

import asyncio
import os
from typing import Optional
import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
import structlog

from .base import GenerationProvider
from ...errors import ProviderError, RateLimitedError


logger = structlog.get_logger()


class GeminiProvider(GenerationProvider):
    """
    Gemini provider using single-shot ``generate_content`` calls.

    Every call carries the whole prompt; no chat session is kept on the
    provider side.
    """

    def __init__(
        self,
        model_name: str = "gemini-pro",
        temperature: float = 0.7,
        max_tokens: int = 2048,
        timeout: float = 30.0,
    ):
        self.model_name = model_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.model: Optional[genai.GenerativeModel] = None
        self.requests = 0
        self.rate_limited = 0

    def initialize(self) -> None:
        """Initialize Gemini API client."""
        logger.info("Initializing Gemini provider", model=self.model_name)

        api_key = os.getenv("GOOGLE_API_KEY")
        if not api_key:
            raise ValueError("GOOGLE_API_KEY environment variable not set")

        genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(model_name=self.model_name)

        logger.info("Gemini client initialized")

    async def generate(self, prompt: str) -> str:
        """Generate a completion from Gemini."""
        if not self.model:
            raise RuntimeError("Gemini not initialized")

        generation_config = genai.GenerationConfig(
            temperature=self.temperature,
            max_output_tokens=self.max_tokens,
        )

        self.requests += 1
        try:
            response = await asyncio.wait_for(
                self.model.generate_content_async(
                    prompt, generation_config=generation_config
                ),
                timeout=self.timeout,
            )
        except google_exceptions.ResourceExhausted as e:
            self.rate_limited += 1
            logger.warning("Gemini rate limit hit", error=str(e))
            raise RateLimitedError(str(e)) from e
        except google_exceptions.GoogleAPIError as e:
            logger.error("Gemini request failed", error=str(e))
            raise ProviderError(str(e)) from e
        except asyncio.TimeoutError as e:
            logger.error("Gemini response timeout", timeout=self.timeout)
            raise ProviderError(f"Gemini response timeout after {self.timeout}s") from e

        try:
            text = response.text
        except ValueError:
            # Blocked or empty candidates have no text part
            logger.warning(
                "Gemini returned no text",
                prompt_feedback=str(getattr(response, "prompt_feedback", "")),
            )
            return ""

        return text or ""

    def stop(self) -> None:
        """Stop Gemini provider."""
        logger.info("Stopping Gemini provider")
        self.model = None

    def get_status(self) -> dict:
        """Get Gemini provider status."""
        return {
            "provider": "gemini",
            "model": self.model_name,
            "initialized": self.model is not None,
            "requests": self.requests,
            "rate_limited": self.rate_limited,
        }
