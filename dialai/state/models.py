"""Call and message records."""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class CallStatus(str, Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CallStatus.COMPLETED, CallStatus.FAILED)


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Message:
    """One utterance in a call."""
    id: str
    role: MessageRole
    content: str
    timestamp: int
    agent_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.agent_name is not None:
            data["agentName"] = self.agent_name
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            id=data["id"],
            role=MessageRole(data["role"]),
            content=data["content"],
            timestamp=int(data["timestamp"]),
            agent_name=data.get("agentName"),
        )


@dataclass
class Call:
    """One conversation session and its transcript."""
    id: str
    assistant_name: str
    status: CallStatus = CallStatus.SCHEDULED
    start_time: int = field(default_factory=now_ms)
    end_time: Optional[int] = None
    messages: List[Message] = field(default_factory=list)
    summary: Optional[str] = None
    knowledge_base_id: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def append_message(
        self, role: MessageRole, content: str, agent_name: Optional[str] = None
    ) -> Message:
        """Append a message, keeping timestamps non-decreasing."""
        if self.is_terminal:
            raise ValueError(f"Call {self.id} is {self.status.value}")

        timestamp = now_ms()
        if self.messages and timestamp < self.messages[-1].timestamp:
            timestamp = self.messages[-1].timestamp

        used_ids = {m.id for m in self.messages}
        message_id = new_id()
        while message_id in used_ids:
            message_id = new_id()

        message = Message(
            id=message_id,
            role=role,
            content=content,
            timestamp=timestamp,
            agent_name=agent_name,
        )
        self.messages.append(message)
        return message

    def finish(self, status: CallStatus, summary: Optional[str] = None) -> None:
        """Move the call to a terminal status; end time is set exactly once."""
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        if self.is_terminal:
            raise ValueError(f"Call {self.id} is already {self.status.value}")

        self.status = status
        self.end_time = max(now_ms(), self.start_time)
        if summary is not None:
            self.summary = summary

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "status": self.status.value,
            "startTime": self.start_time,
            "messages": [m.to_dict() for m in self.messages],
            "assistantName": self.assistant_name,
        }
        if self.end_time is not None:
            data["endTime"] = self.end_time
        if self.summary is not None:
            data["summary"] = self.summary
        if self.knowledge_base_id is not None:
            data["knowledgeBaseId"] = self.knowledge_base_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Call":
        return cls(
            id=data["id"],
            assistant_name=data.get("assistantName", ""),
            status=CallStatus(data["status"]),
            start_time=int(data["startTime"]),
            end_time=data.get("endTime"),
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
            summary=data.get("summary"),
            knowledge_base_id=data.get("knowledgeBaseId"),
        )
