"""Core domain models.

The conversation controller, the topic classifier and the completion client
all operate on these types. Pydantic is used for validation and serialisation
at every data boundary (character files, HTTP bodies, wire messages).
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, RootModel

Role = Literal["system", "user", "assistant"]


class Message(BaseModel):
    """A single role-tagged chat turn. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class MessageLog(RootModel[list[Message]]):
    """Ordered prompt context sent to the completion service.

    Index 0 conventionally holds the system instruction. The log only ever
    grows at the end; the last element may be swapped out, nothing else.
    """

    root: list[Message] = Field(default_factory=list)

    def append(self, message: Message) -> None:
        self.root.append(message)

    def replace_last(self, message: Message) -> None:
        if not self.root:
            raise IndexError("replace_last on an empty message log")
        self.root[-1] = message

    def snapshot(self) -> MessageLog:
        """Return an independent copy; messages are shared, the list is not."""
        return MessageLog(list(self.root))

    def last(self) -> Message:
        return self.root[-1]

    def __len__(self) -> int:
        return len(self.root)

    def __iter__(self):
        return iter(self.root)

    def __getitem__(self, index: int) -> Message:
        return self.root[index]


class TopicNode(BaseModel):
    """A topic the character can react to, with follow-up topics as children."""

    topic: str
    reaction: str
    is_root: bool = False
    children: list[TopicNode] = Field(default_factory=list)


class ConversationMemory(BaseModel):
    """Durable per-character conversation state.

    The controller reads and writes this record while a session is bound to
    it; nothing else should mutate it during that time.
    """

    chat_history_text: str = ""
    message_log: MessageLog = Field(default_factory=MessageLog)
    current_topic: TopicNode | None = None


class Character(BaseModel):
    """An NPC the player can talk to."""

    id: str
    name: str
    description: str = ""
    topics: list[TopicNode] = Field(default_factory=list)
    memory: ConversationMemory = Field(default_factory=ConversationMemory)

    def root_topics(self) -> list[TopicNode]:
        return [t for t in self.topics if t.is_root]


class SamplingParams(BaseModel):
    """Sampling controls sent with a completion request. None fields are omitted."""

    temperature: float = 0.5
    max_tokens: int | None = 100
    frequency_penalty: float | None = 0.0
    presence_penalty: float | None = 0.0


# Classification calls are deterministic and unshaped.
CLASSIFY_PARAMS = SamplingParams(
    temperature=0, max_tokens=None, frequency_penalty=None, presence_penalty=None,
)

# Startup self-check: as small as possible.
SELF_CHECK_PARAMS = SamplingParams(
    temperature=0, max_tokens=4, frequency_penalty=0, presence_penalty=0,
)


class ChatReply(BaseModel):
    """Payload delivered to reply subscribers once per completed turn."""

    reply: str
    full_history_text: str
    character_name: str
