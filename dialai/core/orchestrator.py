"""
Call lifecycle orchestration.

The orchestrator owns every Call record. It starts calls with the
generator's greeting, runs turns (caller text in, agent reply out), closes
calls with a summary, and persists the collection after each change.
"""

import asyncio
from typing import Dict, List, Optional, Set
import structlog

from .generator import ConversationGenerator
from .voice import Utterance, VoiceCoordinator
from ..errors import (
    CallNotFoundError,
    DeviceError,
    DialAIError,
    GenerationFailedError,
    NoActiveCallError,
    StartFailedError,
)
from ..state.call_store import CallStore
from ..state.models import Call, CallStatus, Message, MessageRole, new_id


logger = structlog.get_logger()


class CallOrchestrator:
    """State machine over calls: scheduled -> active -> completed | failed."""

    def __init__(
        self,
        generator: ConversationGenerator,
        voice: Optional[VoiceCoordinator],
        store: CallStore,
        knowledge_base_id: str = "default",
        turn_timeout: Optional[float] = None,
    ):
        self.generator = generator
        self.store = store
        self.voice = voice
        self.turn_timeout = turn_timeout
        self.active_knowledge_base_id = knowledge_base_id

        self.calls: Dict[str, Call] = store.load()
        self.active_call_id: Optional[str] = None
        self.error: Optional[DialAIError] = None
        self.listening_enabled = False

        self._turn_locks: Dict[str, asyncio.Lock] = {}
        self._closing: Set[str] = set()

        self._fail_interrupted_calls()

    @property
    def active_call(self) -> Optional[Call]:
        if self.active_call_id is None:
            return None
        return self.calls.get(self.active_call_id)

    def _record_error(self, error: DialAIError) -> DialAIError:
        """Make ``error`` the current error; a newer error replaces an older one."""
        self.error = error
        logger.warning("Call error", error=str(error), error_type=type(error).__name__)
        return error

    def clear_error(self) -> None:
        self.error = None

    def _persist(self) -> None:
        self.store.save(self.calls)

    def _fail_interrupted_calls(self) -> None:
        """Calls left active by an earlier process can never be ended, so they fail."""
        interrupted = [c for c in self.calls.values() if c.status is CallStatus.ACTIVE]
        if not interrupted:
            return

        for call in interrupted:
            call.finish(CallStatus.FAILED)
        logger.warning(
            "Marked interrupted calls as failed",
            call_ids=[c.id for c in interrupted],
        )
        self._persist()

    def set_active_knowledge_base(self, knowledge_base_id: str) -> None:
        """Select the knowledge base used by calls started from now on."""
        if not self.generator.has_knowledge_base(knowledge_base_id):
            raise ValueError(f"Unknown knowledge base: {knowledge_base_id}")
        self.active_knowledge_base_id = knowledge_base_id

    def list_calls(self) -> List[Call]:
        """All calls, most recent first."""
        return sorted(self.calls.values(), key=lambda c: c.start_time, reverse=True)

    def clear_history(self) -> None:
        """Drop every stored call. Not allowed while a call is active."""
        if self.active_call is not None:
            raise ValueError("Cannot clear call history during an active call")
        self.calls = {}
        self._turn_locks.clear()
        self.store.clear()

    async def _speak(self, text: str) -> None:
        if self.voice is None:
            return
        try:
            await self.voice.speak(text)
        except DeviceError as e:
            # Audio is best-effort; the transcript already holds the text
            logger.warning("Could not speak agent reply", error=str(e))

    def _stop_voice(self) -> None:
        self.listening_enabled = False
        if self.voice is not None:
            self.voice.cancel()

    async def start_call(self) -> str:
        """Start a call seeded with the agent's greeting and return its id."""
        if self.active_call is not None:
            raise self._record_error(
                StartFailedError(f"Call {self.active_call_id} is still active")
            )

        call_id = new_id()
        while call_id in self.calls:
            call_id = new_id()

        try:
            greeting = self.generator.open_greeting()
            call = Call(
                id=call_id,
                assistant_name=greeting.agent_name,
                knowledge_base_id=self.active_knowledge_base_id,
            )
            call.status = CallStatus.ACTIVE
            call.append_message(MessageRole.ASSISTANT, greeting.text, greeting.agent_name)

            self.calls[call_id] = call
            self._persist()
        except Exception as e:
            self.calls.pop(call_id, None)
            logger.error("Failed to start call", error=str(e))
            raise self._record_error(StartFailedError(f"Failed to start call: {e}")) from e

        self.active_call_id = call_id
        self.error = None
        logger.info("Call started", call_id=call_id, agent_name=call.assistant_name)

        await self._speak(greeting.text)
        return call_id

    async def send_message(self, text: str, use_voice: bool = True) -> Optional[Message]:
        """
        Run one turn: record the caller's text, generate and record the reply.

        Turns of the same call are queued behind each other. Returns the
        agent's message, or None when the call ended while the reply was
        being generated.
        """
        call = self.active_call
        if call is None:
            raise self._record_error(NoActiveCallError("No active call found"))

        lock = self._turn_locks.setdefault(call.id, asyncio.Lock())
        async with lock:
            if call.is_terminal or call.id in self._closing:
                raise self._record_error(NoActiveCallError("No active call found"))

            call.append_message(MessageRole.USER, text)
            self.error = None
            self._persist()

            transcript = list(call.messages)
            try:
                reply = await asyncio.wait_for(
                    self.generator.next_utterance(
                        transcript,
                        knowledge_base_id=call.knowledge_base_id,
                        agent_name=call.assistant_name,
                    ),
                    timeout=self.turn_timeout,
                )
            except GenerationFailedError as e:
                raise self._record_error(e)
            except asyncio.TimeoutError as e:
                raise self._record_error(
                    GenerationFailedError(f"No reply within {self.turn_timeout}s")
                ) from e
            except Exception as e:
                raise self._record_error(GenerationFailedError(str(e))) from e

            if call.is_terminal or call.id in self._closing:
                logger.info("Discarding reply for ended call", call_id=call.id)
                return None

            message = call.append_message(MessageRole.ASSISTANT, reply, call.assistant_name)
            self._persist()

        if use_voice:
            await self._speak(reply)
        return message

    async def end_call(self, call_id: str) -> Call:
        """
        Close a call with a summary.

        If the summary cannot be produced the call is marked failed and the
        error is raised; either way the call is closed and voice I/O stops.
        """
        call = self.calls.get(call_id)
        if call is None:
            raise self._record_error(CallNotFoundError(f"Call {call_id} not found"))
        if call.is_terminal or call_id in self._closing:
            return call

        self._closing.add(call_id)
        if self.active_call_id == call_id:
            self.active_call_id = None
            self._stop_voice()

        try:
            summary = await self.generator.summarize(list(call.messages))
        except Exception as e:
            call.finish(CallStatus.FAILED)
            self._persist()
            logger.error("Call closed without summary", call_id=call_id, error=str(e))
            if isinstance(e, DialAIError):
                self._record_error(e)
            else:
                self._record_error(DialAIError(f"Failed to end call: {e}"))
            raise
        finally:
            self._closing.discard(call_id)
            self._turn_locks.pop(call_id, None)

        call.finish(CallStatus.COMPLETED, summary=summary)
        self._persist()
        self.error = None
        logger.info("Call completed", call_id=call_id, messages=len(call.messages))
        return call

    def toggle_listening(self) -> bool:
        """
        Turn voice capture for the active call on or off.

        Returns whether capture is now enabled. A device that will not start
        leaves the call running in text-only mode with the error recorded.
        """
        if self.active_call is None:
            raise self._record_error(NoActiveCallError("No active call found"))
        if self.voice is None:
            self._record_error(DeviceError("Voice I/O is not configured"))
            return False

        if self.listening_enabled:
            self.voice.stop_listening()
            self.listening_enabled = False
            logger.info("Voice capture disabled", call_id=self.active_call_id)
            return False

        try:
            self.voice.start_listening(self._handle_utterance)
        except DeviceError as e:
            self._record_error(e)
            return False

        self.listening_enabled = True
        logger.info("Voice capture enabled", call_id=self.active_call_id)
        return True

    async def _handle_utterance(self, utterance: Utterance) -> None:
        if utterance.is_silence:
            logger.debug("Caller is silent", call_id=self.active_call_id)
            return
        try:
            await self.send_message(utterance.text, use_voice=True)
        except DialAIError as e:
            # Already recorded as the current error; the call stays open
            logger.info("Voice turn failed", error=str(e))

    def get_status(self) -> dict:
        call = self.active_call
        return {
            "active_call_id": self.active_call_id,
            "active_call_messages": len(call.messages) if call else 0,
            "calls": len(self.calls),
            "listening_enabled": self.listening_enabled,
            "knowledge_base_id": self.active_knowledge_base_id,
            "error": str(self.error) if self.error else None,
            "scheduler": self.generator.scheduler.get_status(),
            "voice": self.voice.get_status() if self.voice else None,
        }
