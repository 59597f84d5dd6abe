"""Conversation endpoints: start, resume, say, end, and state.

There is one conversation controller per app. While a reply is outstanding,
start (for a stored character), return and say answer 409.
"""

from fastapi import APIRouter, HTTPException, Request

from backend import storage
from npc_dialog.conversation import ConversationController, ConversationState

from .models import ReturnChatBody, SayBody, StartChatBody

router = APIRouter()


def _controller(request: Request) -> ConversationController:
    return request.app.state.controller


def _chat_state(controller: ConversationController) -> dict:
    return {
        "state": controller.state.value,
        "player_name": controller.player_name,
        "character_name": controller.character_name,
        "history_text": controller.history_text,
        "messages": controller.message_log.model_dump(),
    }


@router.get("/chat")
async def get_chat(request: Request):
    """Current conversation state and message log."""
    return _chat_state(_controller(request))


@router.post("/chat/start")
async def start_chat(body: StartChatBody, request: Request):
    """Start a new conversation with a stored character or a named ad-hoc one."""
    controller = _controller(request)
    player_name = body.player_name or storage.get_config()["player_name"]

    if body.character_id:
        character = storage.get_character(body.character_id)
        if not character:
            raise HTTPException(404, "Character not found")
        description = body.description if body.description is not None else character.description
        if not controller.start_new_chat(player_name, character, description):
            raise HTTPException(409, "A reply is still outstanding")
    elif body.character_name:
        controller.start_new_chat(player_name, body.character_name, body.description or "")
    else:
        raise HTTPException(400, "character_id or character_name is required")

    return _chat_state(controller)


@router.post("/chat/return")
async def return_to_chat(body: ReturnChatBody, request: Request):
    """Resume the stored conversation of a character."""
    controller = _controller(request)
    character = storage.get_character(body.character_id)
    if not character:
        raise HTTPException(404, "Character not found")
    player_name = body.player_name or storage.get_config()["player_name"]
    if not controller.return_to_chat(player_name, character):
        raise HTTPException(409, "A reply is still outstanding")
    return _chat_state(controller)


@router.post("/chat/say")
async def say(body: SayBody, request: Request):
    """Send a player utterance and wait for the character's reply."""
    controller = _controller(request)
    if controller.state is ConversationState.IDLE:
        raise HTTPException(400, "No active chat")
    if controller.state is ConversationState.AWAITING_REPLY:
        raise HTTPException(409, "A reply is still outstanding")
    reply = await controller.request_chat_response(body.message)
    if reply is None:
        raise HTTPException(409, "The chat ended before the reply arrived")
    return reply.model_dump()


@router.post("/chat/end")
async def end_chat(request: Request):
    """End the current conversation."""
    controller = _controller(request)
    controller.end_current_chat()
    return _chat_state(controller)
