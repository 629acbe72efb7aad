"""Tests for the conversation generator."""

import asyncio
import random
import pytest

from dialai.config.settings import DEFAULT_AGENT_NAMES
from dialai.core.generator import (
    ConversationGenerator,
    DEFAULT_KNOWLEDGE_BASE,
    KnowledgeBase,
)
from dialai.core.scheduler import RateLimitedScheduler
from dialai.errors import EmptyCompletionError, ProviderError, RateLimitedError
from dialai.state.models import Call, MessageRole
from mocks.providers import MockGenerationProvider


def make_transcript():
    call = Call(id="call-1", assistant_name="Sarah")
    call.append_message(MessageRole.ASSISTANT, "Hello! This is Sarah from DialAI.", "Sarah")
    call.append_message(MessageRole.USER, "I have 50 employees")
    return call.messages


class TestConversationGenerator:
    """Test cases for ConversationGenerator."""

    def setup_method(self):
        """Set up test fixtures."""
        self.provider = MockGenerationProvider()
        self.generator = ConversationGenerator(
            self.provider,
            RateLimitedScheduler(min_interval=0.0),
            base_delay=0.01,
            rng=random.Random(7),
        )

    def test_open_greeting_uses_agent_pool(self):
        """The greeting names an agent from the pool and the product."""
        greeting = self.generator.open_greeting()

        assert greeting.agent_name in DEFAULT_AGENT_NAMES
        assert greeting.agent_name in greeting.text
        assert "DialAI" in greeting.text
        assert self.provider.prompts == []

    def test_open_greeting_with_custom_identity(self):
        generator = ConversationGenerator(
            self.provider,
            RateLimitedScheduler(),
            product_name="Acme Dialer",
            agent_names=["Nora"],
        )
        greeting = generator.open_greeting()

        assert greeting.agent_name == "Nora"
        assert "This is Nora from Acme Dialer" in greeting.text

    def test_build_prompt_embeds_everything(self):
        """Persona, identity, knowledge and the whole transcript go into one prompt."""
        prompt = self.generator.build_prompt(
            make_transcript(), DEFAULT_KNOWLEDGE_BASE, "Sarah"
        )

        assert DEFAULT_KNOWLEDGE_BASE.prompt in prompt
        assert DEFAULT_KNOWLEDGE_BASE.content in prompt
        assert "You are Sarah" in prompt
        assert "Sarah: Hello! This is Sarah from DialAI." in prompt
        assert "Customer: I have 50 employees" in prompt
        assert prompt.endswith("Sarah:")

    def test_next_utterance_returns_stripped_text(self):
        self.provider.queue("  Great, what's your monthly call volume?  \n")

        reply = asyncio.run(self.generator.next_utterance(make_transcript()))

        assert reply == "Great, what's your monthly call volume?"
        assert len(self.provider.prompts) == 1
        assert "Customer: I have 50 employees" in self.provider.prompts[0]

    def test_next_utterance_uses_agent_from_transcript(self):
        self.provider.queue("ok")
        asyncio.run(self.generator.next_utterance(make_transcript()))

        assert self.provider.prompts[0].endswith("Sarah:")

    def test_empty_completion_raises(self):
        """Blank provider output is an EmptyCompletionError, not retried."""
        self.provider.queue("   ")

        with pytest.raises(EmptyCompletionError):
            asyncio.run(self.generator.next_utterance(make_transcript()))
        assert len(self.provider.prompts) == 1

    def test_rate_limits_are_retried(self):
        self.provider.queue(RateLimitedError(), "Finally")

        reply = asyncio.run(self.generator.next_utterance(make_transcript()))

        assert reply == "Finally"
        assert len(self.provider.prompts) == 2

    def test_exhausted_rate_limit_propagates_verbatim(self):
        error = RateLimitedError("quota")
        self.provider.queue(error, error, error)

        with pytest.raises(RateLimitedError) as exc_info:
            asyncio.run(self.generator.next_utterance(make_transcript()))
        assert exc_info.value is error
        assert len(self.provider.prompts) == 3

    def test_provider_error_propagates_without_retry(self):
        self.provider.queue(ProviderError("bad request"))

        with pytest.raises(ProviderError):
            asyncio.run(self.generator.next_utterance(make_transcript()))
        assert len(self.provider.prompts) == 1

    def test_unknown_knowledge_base_falls_back_to_default(self):
        self.provider.queue("ok")
        asyncio.run(
            self.generator.next_utterance(make_transcript(), knowledge_base_id="missing")
        )

        assert DEFAULT_KNOWLEDGE_BASE.content in self.provider.prompts[0]

    def test_custom_knowledge_base_is_used(self):
        kb = self.generator.add_knowledge_base(
            name="Solar",
            description="Residential solar panels",
            content="Product: SunRoof panels, $99/month",
            prompt="You sell solar panels.",
        )
        self.provider.queue("ok")

        asyncio.run(self.generator.next_utterance(make_transcript(), knowledge_base_id=kb.id))

        assert "SunRoof panels" in self.provider.prompts[0]
        assert "You sell solar panels." in self.provider.prompts[0]
        assert DEFAULT_KNOWLEDGE_BASE.content not in self.provider.prompts[0]

    def test_knowledge_base_catalog(self):
        kb = self.generator.add_knowledge_base("Solar", "desc", "content", "prompt")

        assert len(kb.id) == 8
        assert self.generator.has_knowledge_base(kb.id)
        assert [k.id for k in self.generator.list_knowledge_bases()] == ["default", kb.id]

        updated = KnowledgeBase(
            id=kb.id, name="Solar v2", description="desc", content="new", prompt="prompt"
        )
        self.generator.update_knowledge_base(updated)
        assert self.generator.get_knowledge_base(kb.id).name == "Solar v2"

    def test_stored_knowledge_bases_are_preloaded(self):
        """Stored entries join the catalog and may replace the built-in one."""
        edited_default = KnowledgeBase(
            id="default", name="DialAI Sales", description="edited",
            content="Product: DialAI v2", prompt="prompt",
        )
        solar = KnowledgeBase(
            id="abcd1234", name="Solar", description="", content="SunRoof", prompt="prompt",
        )
        generator = ConversationGenerator(
            self.provider,
            RateLimitedScheduler(min_interval=0.0),
            knowledge_bases=[edited_default, solar],
        )
        self.provider.queue("ok")

        asyncio.run(generator.next_utterance(make_transcript()))

        assert [k.id for k in generator.list_knowledge_bases()] == ["default", "abcd1234"]
        assert "Product: DialAI v2" in self.provider.prompts[0]

    def test_update_unknown_knowledge_base_raises(self):
        kb = KnowledgeBase(id="nope", name="x", description="", content="", prompt="")

        with pytest.raises(ValueError, match="Unknown knowledge base"):
            self.generator.update_knowledge_base(kb)

    def test_summarize_requests_structured_synopsis(self):
        self.provider.queue('{"summary": "Qualified lead", "leadQuality": "hot"}')

        summary = asyncio.run(self.generator.summarize(make_transcript()))

        assert summary == '{"summary": "Qualified lead", "leadQuality": "hot"}'
        prompt = self.provider.prompts[0]
        assert "leadQuality" in prompt
        assert "nextSteps" in prompt
        assert "Customer: I have 50 employees" in prompt

    def test_summarize_empty_raises(self):
        self.provider.queue("")

        with pytest.raises(EmptyCompletionError):
            asyncio.run(self.generator.summarize(make_transcript()))

    def test_analyze_sentiment(self):
        self.provider.queue('{"sentiment": "positive", "explanation": "eager"}')

        result = asyncio.run(self.generator.analyze_sentiment("Sounds great!"))

        assert '"positive"' in result
        assert 'Text: "Sounds great!"' in self.provider.prompts[0]
