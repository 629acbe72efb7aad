"""Tests for generation providers and the provider registry."""

import asyncio
import os
import pytest
from unittest.mock import AsyncMock, Mock, PropertyMock, patch
from google.api_core import exceptions as google_exceptions

from dialai.errors import ProviderError, RateLimitedError
from dialai.providers import registry
from dialai.providers.generation.gemini import GeminiProvider
from dialai.providers.registry import ProviderRegistry
from mocks.providers import MockCapture, MockGenerationProvider


class TestGeminiProvider:
    """Test cases for Gemini provider."""

    def setup_method(self):
        """Set up test fixtures."""
        self.provider = GeminiProvider(timeout=0.05)

    def test_initialization_requires_api_key(self):
        """Test that initialization requires GOOGLE_API_KEY."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="GOOGLE_API_KEY"):
                self.provider.initialize()

    @patch("dialai.providers.generation.gemini.genai")
    def test_successful_initialization(self, mock_genai):
        with patch.dict(os.environ, {"GOOGLE_API_KEY": "test-key"}):
            self.provider.initialize()

        mock_genai.configure.assert_called_once_with(api_key="test-key")
        mock_genai.GenerativeModel.assert_called_once_with(model_name="gemini-pro")
        assert self.provider.get_status()["initialized"] is True

    def test_generate_requires_initialization(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            asyncio.run(self.provider.generate("Hello"))

    def _initialize(self, mock_genai, **response_kwargs):
        mock_model = Mock()
        mock_model.generate_content_async = AsyncMock(**response_kwargs)
        mock_genai.GenerativeModel.return_value = mock_model
        with patch.dict(os.environ, {"GOOGLE_API_KEY": "test-key"}):
            self.provider.initialize()
        return mock_model

    @patch("dialai.providers.generation.gemini.genai")
    def test_generate_returns_text(self, mock_genai):
        mock_model = self._initialize(mock_genai, return_value=Mock(text="Hi, this is Sarah."))

        result = asyncio.run(self.provider.generate("prompt text"))

        assert result == "Hi, this is Sarah."
        args, kwargs = mock_model.generate_content_async.call_args
        assert args == ("prompt text",)
        mock_genai.GenerationConfig.assert_called_once_with(
            temperature=0.7, max_output_tokens=2048
        )
        assert self.provider.requests == 1

    @patch("dialai.providers.generation.gemini.genai")
    def test_resource_exhausted_is_rate_limited(self, mock_genai):
        self._initialize(
            mock_genai, side_effect=google_exceptions.ResourceExhausted("quota exceeded")
        )

        with pytest.raises(RateLimitedError) as exc_info:
            asyncio.run(self.provider.generate("prompt"))

        assert exc_info.value.status_code == 429
        assert self.provider.rate_limited == 1

    @patch("dialai.providers.generation.gemini.genai")
    def test_api_error_is_provider_error(self, mock_genai):
        self._initialize(
            mock_genai, side_effect=google_exceptions.InternalServerError("backend down")
        )

        with pytest.raises(ProviderError):
            asyncio.run(self.provider.generate("prompt"))

    @patch("dialai.providers.generation.gemini.genai")
    def test_timeout_is_provider_error(self, mock_genai):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        mock_model = self._initialize(mock_genai)
        mock_model.generate_content_async = slow

        with pytest.raises(ProviderError, match="timeout"):
            asyncio.run(self.provider.generate("prompt"))

    @patch("dialai.providers.generation.gemini.genai")
    def test_blocked_response_returns_empty_text(self, mock_genai):
        response = Mock()
        type(response).text = PropertyMock(side_effect=ValueError("no parts"))
        self._initialize(mock_genai, return_value=response)

        assert asyncio.run(self.provider.generate("prompt")) == ""

    @patch("dialai.providers.generation.gemini.genai")
    def test_stop(self, mock_genai):
        self._initialize(mock_genai, return_value=Mock(text="ok"))
        self.provider.stop()

        assert self.provider.model is None


class TestProviderRegistry:
    """Test cases for provider registration and lookup."""

    def test_default_providers_registered(self):
        assert "gemini" in registry.list_providers("generation")
        assert "console" in registry.list_providers("capture")
        assert "elevenlabs" in registry.list_providers("synthesis")

    def test_registered_gemini_uses_settings(self):
        provider = registry.get_generation_provider("gemini", timeout=5.0)

        assert isinstance(provider, GeminiProvider)
        assert provider.timeout == 5.0

    def test_config_getter_merged_with_kwargs(self):
        local = ProviderRegistry()
        local.register_generation_provider(
            "mock", MockGenerationProvider, lambda: {"responses": ["configured"], "delay": 0.5}
        )

        provider = local.get_generation_provider("mock", delay=0.0)

        assert provider.script == ["configured"]
        assert provider.delay == 0.0

    def test_unknown_provider(self):
        local = ProviderRegistry()
        local.register_capture_provider("mock", MockCapture)

        assert isinstance(local.get_capture_provider("mock"), MockCapture)
        with pytest.raises(ValueError, match="Unknown capture provider"):
            local.get_capture_provider("whisper")
        with pytest.raises(ValueError, match="Unknown provider kind"):
            local.list_providers("video")

    def test_clear(self):
        local = ProviderRegistry()
        local.register_capture_provider("mock", MockCapture)
        local.clear()

        assert local.list_providers("capture") == []
