import pytest
from datetime import datetime
from unittest.mock import Mock, patch

from tradie_assist.adapters.intent_extractor import IntentExtractor

NINE_AM = datetime(2025, 3, 3, 9, 0)


def _chat_response(content):
    """Build a chat completion shaped like the OpenAI SDK's"""
    mock_message = Mock()
    mock_message.content = content
    mock_choice = Mock()
    mock_choice.message = mock_message
    mock_response = Mock()
    mock_response.choices = [mock_choice]
    return mock_response


class TestIntentExtractor:
    """Unit tests for IntentExtractor module"""

    @pytest.fixture
    def intent_extractor(self):
        """Create IntentExtractor instance for testing"""
        return IntentExtractor(openai_api_key="test_key", business="Dave's Plumbing")

    def test_initialization(self, intent_extractor):
        assert intent_extractor.openai_client is not None
        assert intent_extractor.model == "gpt-3.5-turbo"
        assert intent_extractor.callback_window == "1-3 pm"

    def test_initialization_without_key(self):
        assert IntentExtractor(openai_api_key="").openai_client is None

    def test_parse_json_object_tolerates_chatter(self):
        raw = 'Sure! ```json\n{"name": "Sam", "intent": "quote"}\n``` hope that helps'
        assert IntentExtractor._parse_json_object(raw) == {"name": "Sam", "intent": "quote"}

    def test_parse_json_object_rejects_garbage(self):
        assert IntentExtractor._parse_json_object("") is None
        assert IntentExtractor._parse_json_object("no json here") is None
        assert IntentExtractor._parse_json_object("{not: valid}") is None

    @pytest.mark.asyncio
    async def test_extract_details_success(self, intent_extractor):
        text = "Hi it's Sam, my hot water system is leaking"

        with patch.object(intent_extractor.openai_client.chat.completions, 'create') as mock_create:
            mock_create.return_value = _chat_response(
                '{"name": "Sam", "intent": "booking", "description": "Hot water system leaking"}'
            )
            result = await intent_extractor.extract_details(text)

        assert result.ok
        assert result.info.name == "Sam"
        assert result.info.intent == "booking"
        assert result.info.description == "Hot water system leaking"
        assert mock_create.call_args.kwargs["messages"][1]["content"] == text

    @pytest.mark.asyncio
    async def test_extract_details_fills_missing_fields(self, intent_extractor):
        text = "need a quote for a new tap"

        with patch.object(intent_extractor.openai_client.chat.completions, 'create') as mock_create:
            mock_create.return_value = _chat_response('{"intent": "quote", "name": ""}')
            result = await intent_extractor.extract_details(text)

        assert result.ok
        assert result.info.name == "Customer"
        assert result.info.intent == "quote"
        assert result.info.description == text

    @pytest.mark.asyncio
    async def test_extract_details_unparseable_falls_back(self, intent_extractor):
        text = "I need help"

        with patch.object(intent_extractor.openai_client.chat.completions, 'create') as mock_create:
            mock_create.return_value = _chat_response("I'm not sure what you mean")
            result = await intent_extractor.extract_details(text)

        assert not result.ok
        assert result.info.name == "Customer"
        assert result.info.intent == "other"
        assert result.info.description == text

    @pytest.mark.asyncio
    async def test_extract_details_exception_falls_back(self, intent_extractor):
        text = "I need help"

        with patch.object(intent_extractor.openai_client.chat.completions, 'create') as mock_create:
            mock_create.side_effect = Exception("API error")
            result = await intent_extractor.extract_details(text)

        assert not result.ok
        assert result.error == "API error"
        assert result.info.description == text

    @pytest.mark.asyncio
    async def test_extract_details_without_client(self):
        result = await IntentExtractor(openai_api_key="").extract_details("hello")
        assert not result.ok
        assert result.info.description == "hello"

    @pytest.mark.asyncio
    async def test_infer_callback_time_from_json(self, intent_extractor):
        with patch.object(intent_extractor.openai_client.chat.completions, 'create') as mock_create:
            mock_create.return_value = _chat_response('{"time": "2:30pm"}')
            result = await intent_extractor.infer_callback_time("half past two if that's ok", NINE_AM)

        assert result.proposed_time == datetime(2025, 3, 3, 14, 30)
        assert result.reschedule_prompt is None

    @pytest.mark.asyncio
    async def test_infer_callback_time_from_plain_text(self, intent_extractor):
        with patch.object(intent_extractor.openai_client.chat.completions, 'create') as mock_create:
            mock_create.return_value = _chat_response("1:15pm")
            result = await intent_extractor.infer_callback_time("quarter past one", NINE_AM)

        assert result.proposed_time == datetime(2025, 3, 3, 13, 15)

    @pytest.mark.asyncio
    async def test_infer_callback_time_reschedule(self, intent_extractor):
        with patch.object(intent_extractor.openai_client.chat.completions, 'create') as mock_create:
            mock_create.return_value = _chat_response(
                '{"reschedule": "No worries! What time between 1-3 pm suits?"}'
            )
            result = await intent_extractor.infer_callback_time("whenever", NINE_AM)

        assert result.proposed_time is None
        assert result.reschedule_prompt == "No worries! What time between 1-3 pm suits?"

    @pytest.mark.asyncio
    async def test_infer_callback_time_exception(self, intent_extractor):
        with patch.object(intent_extractor.openai_client.chat.completions, 'create') as mock_create:
            mock_create.side_effect = Exception("API error")
            result = await intent_extractor.infer_callback_time("whenever", NINE_AM)

        assert result.proposed_time is None
        assert result.reschedule_prompt is None

    @pytest.mark.asyncio
    async def test_compose_voicemail_followup(self, intent_extractor):
        with patch.object(intent_extractor.openai_client.chat.completions, 'create') as mock_create:
            mock_create.return_value = _chat_response("  G'day! Can I grab your name?  ")
            reply = await intent_extractor.compose_voicemail_followup("tap is dripping")

        assert reply == "G'day! Can I grab your name?"
        system_prompt = mock_create.call_args.kwargs["messages"][0]["content"]
        assert "Dave's Plumbing" in system_prompt

    @pytest.mark.asyncio
    async def test_compose_voicemail_followup_failure(self, intent_extractor):
        with patch.object(intent_extractor.openai_client.chat.completions, 'create') as mock_create:
            mock_create.side_effect = Exception("API error")
            assert await intent_extractor.compose_voicemail_followup("tap is dripping") is None
