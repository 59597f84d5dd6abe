"""Tests for prompt construction."""

from npc_dialog import prompts
from npc_dialog.models import TopicNode


def test_system_instruction_names_both_sides():
    text = prompts.system_instruction("Hero", "Gareth", "A guard captain.")
    assert text == (
        "The following is a conversation between user called Hero "
        "and a character called Gareth.\n \nA guard captain."
    )


def test_reaction_system_instruction_explains_tag():
    text = prompts.reaction_system_instruction("Hero", "Gareth", "desc")
    assert text.startswith(prompts.system_instruction("Hero", "Gareth", "desc"))
    assert "<REACTION>:" in text
    assert "Never breaks character." in text


def test_history_turn_ends_with_npc_label():
    assert prompts.history_turn("Hero", "Gareth", "Hi") == "\n \nHero: Hi\n \nGareth: "


def test_player_turn():
    assert prompts.player_turn("Hero", "Hi") == "Hero: Hi"


def test_classification_prompt_numbers_candidates():
    candidates = [
        TopicNode(topic="The dragon", reaction="r1"),
        TopicNode(topic="Small talk", reaction="r2"),
    ]
    text = prompts.classification_prompt("Hero: Tell me about the beast", candidates)
    assert text.startswith("Hero: Tell me about the beast\n \n")
    assert "Analyze the last reply from the user for its topic.\n" in text
    assert "1. The dragon\n2. Small talk\n" in text
    assert text.endswith("Output this choice exactly as it is written in the list.")


def test_reaction_block():
    assert prompts.reaction_block("He scowls.") == (
        "\n \n <REACTION>: He scowls.\n \n Output this reaction as a text reply: "
    )
