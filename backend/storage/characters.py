"""Character definition files and the in-process character registry.

Definitions (name, description, topic forest) live in
characters/<id>.json. Conversation memory is never written to disk; it lives
on the loaded Character object for as long as the process runs, so the same
object must be handed out on every lookup.
"""

import json
from pathlib import Path

from npc_dialog.models import Character, TopicNode

from .core import characters_dir, slugify

_loaded: dict[str, Character] = {}


def _character_path(char_id: str) -> Path:
    return characters_dir() / f"{char_id}.json"


def _write_definition(character: Character) -> None:
    data = character.model_dump(exclude={"memory"})
    _character_path(character.id).write_text(json.dumps(data, indent=2))


def list_characters() -> list[Character]:
    results = []
    for path in sorted(characters_dir().glob("*.json")):
        character = get_character(path.stem)
        if character is not None:
            results.append(character)
    return results


def get_character(char_id: str) -> Character | None:
    """Return the loaded character, reading its definition on first use."""
    if char_id in _loaded:
        return _loaded[char_id]
    path = _character_path(char_id)
    if not path.is_file():
        return None
    character = Character.model_validate_json(path.read_text())
    _loaded[char_id] = character
    return character


def create_character(
    name: str, description: str = "", topics: list[TopicNode] | None = None,
) -> Character:
    """Create and persist a character. Raises ValueError on id collision."""
    char_id = slugify(name)
    if _character_path(char_id).is_file():
        raise ValueError(f"Character '{name}' already exists")
    character = Character(id=char_id, name=name, description=description, topics=topics or [])
    _write_definition(character)
    _loaded[char_id] = character
    return character


def save_character(character: Character) -> None:
    """Persist a character's definition and make it the registered instance."""
    _write_definition(character)
    _loaded[character.id] = character


def delete_character(char_id: str) -> bool:
    path = _character_path(char_id)
    if not path.is_file():
        return False
    path.unlink()
    _loaded.pop(char_id, None)
    return True
