"""Prompt text for the conversation and the topic classifier.

Plain f-strings. Paragraphs are separated by "\\n \\n" throughout, both in the
message log and in the human-readable transcript.
"""

from __future__ import annotations

from npc_dialog.models import TopicNode

REACTION_TAG = "<REACTION>:"

TOPIC_ANALYSIS_INSTRUCTION = (
    "This is an assistant that analyzes chat messages by picking topics "
    "from a provided list."
)


def system_instruction(player_name: str, npc_name: str, description: str) -> str:
    """System message for a character-bound conversation."""
    return (
        f"The following is a conversation between user called {player_name} "
        f"and a character called {npc_name}.\n \n{description}"
    )


def reaction_system_instruction(player_name: str, npc_name: str, description: str) -> str:
    """System message for a free-standing conversation.

    Also tells the model how to read injected reaction blocks and to stay in
    character.
    """
    return (
        f"{system_instruction(player_name, npc_name, description)}. "
        f"In between, there are parts denoted with {REACTION_TAG} keyword that "
        f"describe the characters next reply and reaction. "
        f"Only answers as the {npc_name} character. Never breaks character."
    )


def history_header(player_name: str, npc_name: str, description: str) -> str:
    """Opening line of the human-readable transcript."""
    return (
        f"{description}The following is a conversation between "
        f"{player_name} and {npc_name}. "
    )


def free_history_header(player_name: str, npc_name: str, description: str) -> str:
    """Opening of the transcript when no Character record is involved."""
    return (
        f"The following is a conversation between {player_name} and "
        f"{npc_name}.\n \n{description}"
    )


def player_turn(player_name: str, utterance: str) -> str:
    """Content of the user message added to the log for one utterance."""
    return f"{player_name}: {utterance}"


def history_turn(player_name: str, npc_name: str, utterance: str) -> str:
    """Transcript fragment for one utterance, ending with the NPC's label."""
    return f"\n \n{player_turn(player_name, utterance)}\n \n{npc_name}: "


def classification_prompt(last_user_content: str, candidates: list[TopicNode]) -> str:
    """Ask the model to pick exactly one of the numbered topic labels."""
    lines = "".join(
        f"{i}. {node.topic}\n" for i, node in enumerate(candidates, start=1)
    )
    return (
        f"{last_user_content}\n \n"
        "Analyze the last reply from the user for its topic.\n"
        f"{lines}\n"
        "Pick a topic from the above numbered list. Pick only from the list "
        "above, not other source. Output this choice exactly as it is "
        "written in the list."
    )


def reaction_block(reaction: str) -> str:
    """Suffix appended to the real user turn once a topic has been matched."""
    return f"\n \n {REACTION_TAG} {reaction}\n \n Output this reaction as a text reply: "
