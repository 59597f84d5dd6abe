"""Conversation controller: one player talking to one character at a time.

States:

    IDLE            no session
    ACTIVE          session bound, nothing outstanding
    AWAITING_REPLY  a completion turn is in flight

Every entry point that mutates a session checks the in-flight flag first, so
at most one completion turn runs per controller. The flag is set before the
first outbound call of a turn and cleared in a finally once the turn settles,
including all retries and both calls of the classification path.

A turn remembers the session generation it was dispatched for. If the session
is ended or replaced before the reply arrives, the reply is dropped and
everything the turn wrote into the memory is undone. A stored conversation
never ends on an unanswered user turn.

The startup self-check holds the flag only while an attempt is outstanding and
releases it during the wait between attempts.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable

from pydantic import BaseModel, Field

from npc_dialog import prompts
from npc_dialog.formatting import format_response
from npc_dialog.llm import Completer, FixedDelay, GrowingDelay, RetryPolicy
from npc_dialog.models import (
    Character,
    ChatReply,
    ConversationMemory,
    Message,
    MessageLog,
    SamplingParams,
)
from npc_dialog.topics import TopicClassifier

logger = logging.getLogger(__name__)

ReplyHandler = Callable[[ChatReply], None]

_SINGLE_ATTEMPT = FixedDelay(0, max_attempts=1)


class ConversationState(enum.Enum):
    IDLE = "idle"
    ACTIVE = "active"
    AWAITING_REPLY = "awaiting_reply"


class ConversationSession(BaseModel):
    """The bound conversation. `memory` is the character's record, shared by reference."""

    player_name: str
    character_name: str
    memory: ConversationMemory
    stop_sequences: list[str] = Field(default_factory=list)
    character: Character | None = None
    generation: int = 0


class ConversationController:
    """Owns the active session and runs completion turns for it.

    Args:
        client:         Anything implementing Completer.
        params:         Sampling parameters for chat replies.
        check_topics:   Route turns through the topic classifier when the
                        session is bound to a Character.
        handlers:       Reply subscribers, called once per completed turn.
        sleep:          Awaitable sleep used between self-check attempts.
    """

    def __init__(
        self,
        client: Completer,
        params: SamplingParams | None = None,
        check_topics: bool = False,
        handlers: list[ReplyHandler] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._classifier = TopicClassifier(client)
        self.params = params or SamplingParams()
        self.check_topics = check_topics
        self._handlers: list[ReplyHandler] = list(handlers or [])
        self._session: ConversationSession | None = None
        self._generation = 0
        self._awaiting_reply = False
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConversationState:
        if self._awaiting_reply:
            return ConversationState.AWAITING_REPLY
        if self._session is None:
            return ConversationState.IDLE
        return ConversationState.ACTIVE

    @property
    def awaiting_reply(self) -> bool:
        return self._awaiting_reply

    @property
    def session(self) -> ConversationSession | None:
        return self._session

    @property
    def message_log(self) -> MessageLog:
        if self._session is None:
            return MessageLog()
        return self._session.memory.message_log

    @property
    def history_text(self) -> str:
        if self._session is None:
            return ""
        return self._session.memory.chat_history_text

    @property
    def player_name(self) -> str:
        return self._session.player_name if self._session else ""

    @property
    def character_name(self) -> str:
        return self._session.character_name if self._session else ""

    @property
    def stop_sequences(self) -> list[str]:
        return list(self._session.stop_sequences) if self._session else []

    def use_client(self, client: Completer) -> None:
        """Swap the completion backend. Takes effect from the next turn."""
        self._client = client
        self._classifier = TopicClassifier(client)

    def subscribe(self, handler: ReplyHandler) -> None:
        self._handlers.append(handler)

    def unsubscribe(self, handler: ReplyHandler) -> None:
        self._handlers.remove(handler)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def _bind(
        self,
        player_name: str,
        npc_name: str,
        memory: ConversationMemory,
        character: Character | None,
    ) -> ConversationSession:
        self._generation += 1
        self._session = ConversationSession(
            player_name=player_name,
            character_name=npc_name,
            memory=memory,
            stop_sequences=[f"{player_name}:", f"{npc_name}:"],
            character=character,
            generation=self._generation,
        )
        return self._session

    def start_new_chat(
        self, player_name: str, character: Character | str, description: str = "",
    ) -> bool:
        """Start a fresh conversation.

        With a character name, a new memory is created and the call always
        proceeds, even while a reply is outstanding. With a Character, the call
        is refused while a reply is outstanding; otherwise the character's own
        message log is reused and a new system turn is appended to it.
        """
        if isinstance(character, str):
            memory = ConversationMemory(
                chat_history_text=prompts.free_history_header(player_name, character, description),
            )
            memory.message_log.append(Message(
                role="system",
                content=prompts.reaction_system_instruction(player_name, character, description),
            ))
            self._bind(player_name, character, memory, None)
            logger.info("Started chat between %s and %s", player_name, character)
            return True

        if self._awaiting_reply:
            logger.warning("start_new_chat(%s) refused: a reply is outstanding", character.id)
            return False

        memory = character.memory
        memory.chat_history_text = prompts.history_header(player_name, character.name, description)
        memory.message_log.append(Message(
            role="system",
            content=prompts.system_instruction(player_name, character.name, description),
        ))
        self._bind(player_name, character.name, memory, character)
        logger.info("Started chat between %s and %s", player_name, character.id)
        return True

    def return_to_chat(self, player_name: str, character: Character) -> bool:
        """Resume a character's stored conversation."""
        if self._awaiting_reply:
            logger.warning("return_to_chat(%s) refused: a reply is outstanding", character.id)
            return False
        self._bind(player_name, character.name, character.memory, character)
        logger.info("Returned to chat between %s and %s", player_name, character.id)
        return True

    def end_current_chat(self) -> None:
        """Drop the session. The bound character's memory is left as it is."""
        if self._session is not None:
            logger.info("Ended chat with %s", self._session.character_name)
        self._generation += 1
        self._session = None

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def request_chat_response(self, utterance: str) -> ChatReply | None:
        """Add the player's utterance and fetch the character's reply.

        Returns None without touching the log while a reply is outstanding,
        when no session is active, or when the session was replaced before the
        reply arrived.
        """
        if self._awaiting_reply:
            logger.warning("Utterance ignored: a reply is still outstanding")
            return None
        session = self._session
        if session is None:
            logger.warning("Utterance ignored: no active chat")
            return None

        memory = session.memory
        log_length = len(memory.message_log)
        history_text = memory.chat_history_text
        current_topic = memory.current_topic

        memory.chat_history_text += prompts.history_turn(
            session.player_name, session.character_name, utterance,
        )
        memory.message_log.append(Message(
            role="user", content=prompts.player_turn(session.player_name, utterance),
        ))

        self._awaiting_reply = True
        try:
            if self.check_topics and session.character is not None:
                message = await self._classifier.classify(
                    memory.message_log, session.character, self.params,
                )
            else:
                message = await self._client.complete(memory.message_log.snapshot(), self.params)
        finally:
            self._awaiting_reply = False

        if session.generation != self._generation:
            logger.info(
                "Dropping stale reply for %s (session generation %d, now %d)",
                session.character_name, session.generation, self._generation,
            )
            del memory.message_log.root[log_length:]
            memory.chat_history_text = history_text
            memory.current_topic = current_topic
            return None

        return self._apply_reply(session, message)

    def _apply_reply(self, session: ConversationSession, message: Message) -> ChatReply:
        text = format_response(message.content, session.character_name)
        memory = session.memory
        memory.chat_history_text += text
        memory.message_log.append(message)

        reply = ChatReply(
            reply=text,
            full_history_text=memory.chat_history_text,
            character_name=session.character_name,
        )
        for handler in list(self._handlers):
            handler(reply)
        return reply

    # ------------------------------------------------------------------
    # Self-check
    # ------------------------------------------------------------------

    async def check_connection(self, retry: RetryPolicy | None = None) -> bool:
        """Run the backend self-check until it succeeds or `retry` gives up.

        Each attempt goes to the client bound at that moment, so a client
        swapped in with use_client() is picked up by a check already running.
        An attempt that falls due while a reply is outstanding counts as
        failed.
        """
        policy = retry or GrowingDelay(start=1.0, step=1.0)
        attempt = 0
        while True:
            attempt += 1
            if await self._check_once():
                return True
            wait = policy.delay(attempt)
            if wait is None:
                return False
            await self._sleep(wait)

    async def _check_once(self) -> bool:
        if self._awaiting_reply:
            logger.info("Connection check attempt skipped: a reply is outstanding")
            return False
        self._awaiting_reply = True
        try:
            return await self._client.check_connection(retry=_SINGLE_ATTEMPT)
        finally:
            self._awaiting_reply = False
