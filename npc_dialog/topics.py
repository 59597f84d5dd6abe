"""Topic classification and reaction injection.

A character carries a topic forest. Before the real reply is requested, the
player's last utterance is classified against the current candidates:

  1. Copy the log and swap the system instruction for a neutral topic-analysis
     one.
  2. Candidates are the character's root topics, or the children of the
     current topic once one has been selected.
  3. Replace the copy's last turn with a numbered list of candidate labels and
     ask for exactly one of them (temperature 0).
  4. The first candidate whose label occurs in the formatted answer wins. Its
     reaction is appended to the real last user turn and it becomes the
     character's current topic.
  5. The real log, reaction-augmented or not, is sent for the actual reply.

A miss is not an error: the turn continues with the unmodified log and the
current topic stays where it was.
"""

from __future__ import annotations

import logging

from npc_dialog import prompts
from npc_dialog.formatting import format_response
from npc_dialog.llm import Completer
from npc_dialog.models import (
    CLASSIFY_PARAMS,
    Character,
    Message,
    MessageLog,
    SamplingParams,
    TopicNode,
)

logger = logging.getLogger(__name__)


def candidate_topics(character: Character) -> list[TopicNode]:
    current = character.memory.current_topic
    if current is None:
        return character.root_topics()
    return list(current.children)


def match_topic(candidates: list[TopicNode], answer: str) -> TopicNode | None:
    """Return the first candidate whose label is a substring of the answer."""
    for node in candidates:
        if node.topic in answer:
            return node
    return None


def build_classification_log(log: MessageLog, candidates: list[TopicNode]) -> MessageLog:
    """Copy of the log with the topic-analysis system turn and question in place."""
    check = log.snapshot()
    check.root[0] = Message(role="system", content=prompts.TOPIC_ANALYSIS_INSTRUCTION)
    question = prompts.classification_prompt(log.last().content, candidates)
    check.replace_last(Message(role="user", content=question))
    return check


class TopicClassifier:
    def __init__(self, client: Completer) -> None:
        self._client = client

    async def resolve_topic(self, log: MessageLog, character: Character) -> TopicNode | None:
        """Ask the backend which candidate topic the last user turn is about."""
        candidates = candidate_topics(character)
        if not candidates:
            logger.debug("No candidate topics for %s, classification skipped", character.id)
            return None

        check = build_classification_log(log, candidates)
        answer = await self._client.complete(check, CLASSIFY_PARAMS)
        answer_text = format_response(answer.content, character.name)
        node = match_topic(candidates, answer_text)
        if node is None:
            logger.debug("Classifier answer %r matched no topic", answer_text)
        else:
            logger.debug("Classifier picked topic %r for %s", node.topic, character.id)
        return node

    async def classify(
        self, log: MessageLog, character: Character, params: SamplingParams,
    ) -> Message:
        """Classify the last user turn, inject the reaction, and return the reply.

        `log` is the real conversation log; it is only changed when a topic
        matches, and then only in its last (user) element.
        """
        node = await self.resolve_topic(log, character)
        if node is not None:
            last = log.last()
            log.replace_last(
                Message(role="user", content=last.content + prompts.reaction_block(node.reaction))
            )
            character.memory.current_topic = node
        return await self._client.complete(log.snapshot(), params)
