"""Tests for LLM service."""

import pytest
from unittest.mock import patch, MagicMock


class TestLLMServiceGenerate:
    """Test LLM text generation."""

    @pytest.fixture
    def llm_service(self, settings):
        """Create LLMService with mocked client."""
        with patch("audit_engine.services.llm_service.genai") as mock_genai:
            mock_client = MagicMock()
            mock_genai.Client.return_value = mock_client

            from audit_engine.services.llm_service import LLMService
            service = LLMService(settings)
            service._mock_client = mock_client
            service._mock_genai = mock_genai
            return service

    def test_client_uses_configured_key(self, llm_service):
        llm_service._mock_genai.Client.assert_called_once_with(api_key="test-api-key")
        assert llm_service.model == "gemini-2.0-flash"

    @pytest.mark.asyncio
    async def test_generate_returns_text(self, llm_service):
        """generate returns generated text."""
        mock_response = MagicMock()
        mock_response.text = '{"is_vulnerable": false}'

        llm_service._mock_client.models.generate_content.return_value = mock_response

        result = await llm_service.generate("Test prompt")

        assert result == '{"is_vulnerable": false}'

    @pytest.mark.asyncio
    async def test_generate_uses_configured_limits(self, llm_service):
        """Defaults come from settings; explicit arguments win."""
        mock_response = MagicMock()
        mock_response.text = ""
        llm_service._mock_client.models.generate_content.return_value = mock_response

        await llm_service.generate("Test prompt", system_prompt="Be terse")

        kwargs = llm_service._mock_client.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.0-flash"
        assert kwargs["contents"] == "Test prompt"
        assert kwargs["config"].max_output_tokens == 4000
        assert kwargs["config"].temperature == 0.1
        assert kwargs["config"].system_instruction == "Be terse"

        await llm_service.generate("Test prompt", max_tokens=10, temperature=0.5)

        kwargs = llm_service._mock_client.models.generate_content.call_args.kwargs
        assert kwargs["config"].max_output_tokens == 10
        assert kwargs["config"].temperature == 0.5

    @pytest.mark.asyncio
    async def test_generate_handles_none_text(self, llm_service):
        """generate returns empty string if response text is None."""
        mock_response = MagicMock()
        mock_response.text = None

        llm_service._mock_client.models.generate_content.return_value = mock_response

        result = await llm_service.generate("Test prompt")

        assert result == ""

    @pytest.mark.asyncio
    async def test_generate_raises_on_error(self, llm_service):
        """generate raises exception on API error."""
        llm_service._mock_client.models.generate_content.side_effect = Exception("API Error")

        with pytest.raises(Exception) as exc:
            await llm_service.generate("Test prompt")

        assert "API Error" in str(exc.value)
