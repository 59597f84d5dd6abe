"""Character CRUD endpoints."""

from fastapi import APIRouter, HTTPException

from backend import storage

from .models import CreateCharacter, UpdateCharacter

router = APIRouter()


def _definition(character) -> dict:
    data = character.model_dump(exclude={"memory"})
    current = character.memory.current_topic
    data["current_topic"] = current.topic if current else None
    return data


@router.get("/characters")
async def list_characters():
    """List all character definitions."""
    return [_definition(c) for c in storage.list_characters()]


@router.post("/characters", status_code=201)
async def create_character(body: CreateCharacter):
    """Create a new character."""
    try:
        character = storage.create_character(body.name, body.description, body.topics)
    except ValueError as e:
        raise HTTPException(409, str(e))
    return _definition(character)


@router.get("/characters/{char_id}")
async def get_character(char_id: str):
    """Get a single character by id."""
    character = storage.get_character(char_id)
    if not character:
        raise HTTPException(404, "Character not found")
    return _definition(character)


@router.patch("/characters/{char_id}")
async def update_character(char_id: str, body: UpdateCharacter):
    """Update a character's description or topic forest.

    Replacing the topics resets the current topic, since it pointed into the
    old forest.
    """
    character = storage.get_character(char_id)
    if not character:
        raise HTTPException(404, "Character not found")
    if body.description is not None:
        character.description = body.description
    if body.topics is not None:
        character.topics = body.topics
        character.memory.current_topic = None
    storage.save_character(character)
    return _definition(character)


@router.delete("/characters/{char_id}")
async def delete_character(char_id: str):
    """Delete a character definition."""
    if not storage.delete_character(char_id):
        raise HTTPException(404, "Character not found")
    return {"ok": True}
