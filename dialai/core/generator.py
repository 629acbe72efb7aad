"""Agent utterances: greetings, replies, summaries and sentiment."""

import random
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
import structlog

from .scheduler import RateLimitedScheduler, retry_on_rate_limit
from ..config.settings import DEFAULT_AGENT_NAMES
from ..errors import EmptyCompletionError
from ..providers.generation.base import GenerationProvider
from ..state.models import Message, MessageRole


logger = structlog.get_logger()


@dataclass(frozen=True)
class KnowledgeBase:
    """Persona instructions and reference content for prompts."""
    id: str
    name: str
    description: str
    content: str
    prompt: str


@dataclass(frozen=True)
class Greeting:
    text: str
    agent_name: str


DEFAULT_KNOWLEDGE_BASE = KnowledgeBase(
    id="default",
    name="DialAI Sales",
    description="Default sales pitch for DialAI service",
    content="""Product: DialAI - AI-powered Sales Calling Solution

Key Features & Benefits:
- 24/7 automated cold calling with human-like conversation
- Real-time analytics and insights
- 3x faster lead qualification
- 60% cost reduction vs human agents
- Instant scalability

Pricing:
- Starter: $499/month (1000 calls)
- Professional: $999/month (5000 calls)
- Enterprise: Custom pricing

Qualification Criteria:
- Company size: 10+ employees
- Current sales team: Yes
- Monthly call volume: 500+
- Pain points: Scaling sales, cost, consistency

Required Customer Info:
- Full Name
- Company Name
- Email
- Phone
- Current Call Volume""",
    prompt="""You are an AI sales agent. Be direct, professional, and efficient.

Key Behaviors:
1. Keep responses under 2 sentences unless explaining pricing/features
2. Get to the point quickly - minimize small talk
3. Qualify leads early using criteria from knowledge base
4. For interested prospects, collect all required customer info
5. End call if:
   - Customer is clearly not qualified
   - Customer shows no interest after 2-3 exchanges
   - You've collected all info for a successful sale
   - Call exceeds 5 minutes

Response Guidelines:
- Start with brief greeting and company intro
- Focus on benefits over features
- Use numbers and specifics when discussing ROI
- Collect customer info naturally in conversation
- End call professionally with clear next steps

Personality:
- Professional and direct
- Solution-focused
- Time-conscious
- Confident but not pushy""",
)

GREETING_TEMPLATE = (
    "Hello! This is {agent_name} from {product}. I'm an AI assistant, and I'd love "
    "to tell you about our innovative sales calling solution. How are you today?"
)

SUMMARY_PROMPT = """Summarize the following conversation and extract key information.

Conversation:
{conversation}

Provide summary in JSON format:
{{
  "summary": "brief summary",
  "keyPoints": ["point1", "point2", ...],
  "nextSteps": "recommended next steps",
  "leadQuality": "hot|warm|cold",
  "customerInfo": {{
    "name": "if mentioned",
    "company": "if mentioned",
    "email": "if mentioned",
    "phone": "if mentioned"
  }}
}}"""

SENTIMENT_PROMPT = """Analyze the sentiment of the following text and provide a brief explanation.
Text: "{text}"

Respond in JSON format:
{{
  "sentiment": "positive|negative|neutral",
  "explanation": "brief explanation"
}}"""


class ConversationGenerator:
    """
    Produces the agent's side of a call.

    Every provider call goes through the shared scheduler with the
    rate-limit retry policy; other failures reach the caller unchanged.
    """

    def __init__(
        self,
        provider: GenerationProvider,
        scheduler: RateLimitedScheduler,
        product_name: str = "DialAI",
        agent_names: Optional[Sequence[str]] = None,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        rng: Optional[random.Random] = None,
        knowledge_bases: Optional[Sequence[KnowledgeBase]] = None,
    ):
        self.provider = provider
        self.scheduler = scheduler
        self.product_name = product_name
        self.agent_names = list(agent_names or DEFAULT_AGENT_NAMES)
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._rng = rng or random.Random()
        self._knowledge_bases: Dict[str, KnowledgeBase] = {
            DEFAULT_KNOWLEDGE_BASE.id: DEFAULT_KNOWLEDGE_BASE
        }
        # Stored entries may replace the built-in one by id
        for kb in knowledge_bases or ():
            self._knowledge_bases[kb.id] = kb

    # Knowledge bases

    def list_knowledge_bases(self) -> List[KnowledgeBase]:
        return list(self._knowledge_bases.values())

    def get_knowledge_base(self, knowledge_base_id: Optional[str]) -> KnowledgeBase:
        """Look up a knowledge base, falling back to the default one."""
        if knowledge_base_id is None:
            return self._knowledge_bases[DEFAULT_KNOWLEDGE_BASE.id]
        kb = self._knowledge_bases.get(knowledge_base_id)
        if kb is None:
            logger.warning(
                "Unknown knowledge base, using default", knowledge_base_id=knowledge_base_id
            )
            return self._knowledge_bases[DEFAULT_KNOWLEDGE_BASE.id]
        return kb

    def has_knowledge_base(self, knowledge_base_id: str) -> bool:
        return knowledge_base_id in self._knowledge_bases

    def add_knowledge_base(
        self, name: str, description: str, content: str, prompt: str
    ) -> KnowledgeBase:
        kb_id = uuid.uuid4().hex[:8]
        while kb_id in self._knowledge_bases:
            kb_id = uuid.uuid4().hex[:8]

        kb = KnowledgeBase(
            id=kb_id, name=name, description=description, content=content, prompt=prompt
        )
        self._knowledge_bases[kb_id] = kb
        logger.info("Knowledge base added", knowledge_base_id=kb_id, name=name)
        return kb

    def update_knowledge_base(self, kb: KnowledgeBase) -> None:
        """Replace a knowledge base; prompts built earlier keep the old content."""
        if kb.id not in self._knowledge_bases:
            raise ValueError(f"Unknown knowledge base: {kb.id}")
        self._knowledge_bases[kb.id] = kb
        logger.info("Knowledge base updated", knowledge_base_id=kb.id)

    # Utterances

    def open_greeting(self) -> Greeting:
        agent_name = self._rng.choice(self.agent_names)
        text = GREETING_TEMPLATE.format(agent_name=agent_name, product=self.product_name)
        return Greeting(text=text, agent_name=agent_name)

    @staticmethod
    def _agent_name_for(transcript: Sequence[Message]) -> str:
        for message in transcript:
            if message.role is MessageRole.ASSISTANT and message.agent_name:
                return message.agent_name
        return DEFAULT_AGENT_NAMES[0]

    def build_prompt(
        self,
        transcript: Sequence[Message],
        knowledge_base: KnowledgeBase,
        agent_name: str,
    ) -> str:
        history = "\n".join(
            f"{agent_name if m.role is MessageRole.ASSISTANT else 'Customer'}: {m.content}"
            for m in transcript
        )
        return (
            f"{knowledge_base.prompt}\n\n"
            f"You are {agent_name}, an AI sales agent.\n\n"
            f"Knowledge Base:\n{knowledge_base.content}\n\n"
            f"Conversation History:\n{history}\n\n"
            f"{agent_name}:"
        )

    async def _complete(self, prompt: str, purpose: str) -> str:
        async def operation() -> str:
            return await self.provider.generate(prompt)

        text = await retry_on_rate_limit(
            self.scheduler,
            operation,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
        )
        text = (text or "").strip()
        if not text:
            logger.warning("Empty completion", purpose=purpose)
            raise EmptyCompletionError("Empty response from AI")
        return text

    async def next_utterance(
        self,
        transcript: Sequence[Message],
        knowledge_base_id: Optional[str] = None,
        agent_name: Optional[str] = None,
    ) -> str:
        """Generate the agent's next line for the transcript so far."""
        knowledge_base = self.get_knowledge_base(knowledge_base_id)
        agent_name = agent_name or self._agent_name_for(transcript)
        prompt = self.build_prompt(transcript, knowledge_base, agent_name)

        logger.debug(
            "Generating reply",
            turns=len(transcript),
            knowledge_base_id=knowledge_base.id,
            agent_name=agent_name,
        )
        return await self._complete(prompt, "reply")

    async def summarize(self, transcript: Sequence[Message]) -> str:
        """Ask for a JSON synopsis of the call; returned as the provider wrote it."""
        conversation = "\n".join(
            f"{'Assistant' if m.role is MessageRole.ASSISTANT else 'Customer'}: {m.content}"
            for m in transcript
        )
        return await self._complete(SUMMARY_PROMPT.format(conversation=conversation), "summary")

    async def analyze_sentiment(self, text: str) -> str:
        return await self._complete(SENTIMENT_PROMPT.format(text=text), "sentiment")
