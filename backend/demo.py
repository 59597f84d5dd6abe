"""Create demo characters for development/testing."""

import shutil

from backend import storage
from npc_dialog.models import TopicNode

DEMO_CHARACTERS = [
    {
        "name": "Gareth",
        "description": "Gareth is the captain of the village guard in Dragon's Hollow. "
        "He is gruff, loyal to the king, and tired of adventurers who make promises "
        "they cannot keep.",
        "topics": [
            TopicNode(
                topic="The dragon",
                reaction="Gareth scowls and says the dragon burned half the village. "
                "He asks whether the player intends to do anything about it.",
                is_root=True,
                children=[
                    TopicNode(
                        topic="Offer to slay the dragon",
                        reaction="Gareth laughs bitterly, then points towards the mountain "
                        "pass and warns that the last three heroes never came back.",
                    ),
                    TopicNode(
                        topic="Ask about the Dragonbane Amulet",
                        reaction="Gareth lowers his voice and admits the elder knows where "
                        "the amulet is hidden in the old mine shafts.",
                    ),
                ],
            ),
            TopicNode(
                topic="Elena the healer",
                reaction="Gareth softens for a moment and says Elena has kept the wounded "
                "alive. He tells the player to leave her out of any foolish plan.",
                is_root=True,
            ),
            TopicNode(
                topic="Small talk",
                reaction="Gareth grunts that he has no time for idle chatter.",
                is_root=True,
            ),
        ],
    },
    {
        "name": "Elena",
        "description": "Elena is the village healer. She is curious about the dragon "
        "and believes it is more frightened than fearsome.",
        "topics": [
            TopicNode(
                topic="Healing supplies",
                reaction="Elena sighs that she is running out of herbs and asks the player "
                "to gather moonleaf from the riverbank.",
                is_root=True,
            ),
            TopicNode(
                topic="The dragon",
                reaction="Elena says quietly that the dragon is young and was driven from "
                "its mother's lair.",
                is_root=True,
            ),
        ],
    },
]


def create_demo_data() -> None:
    """Wipe existing characters and create fresh demo characters."""
    if storage.characters_dir().exists():
        shutil.rmtree(storage.characters_dir())
    storage.init_storage(storage.data_dir())  # recreate the directory, forget loaded characters

    for char in DEMO_CHARACTERS:
        topics = [t.model_copy(deep=True) for t in char["topics"]]
        storage.create_character(char["name"], char["description"], topics)

    print(f"Created {len(DEMO_CHARACTERS)} demo characters.")
