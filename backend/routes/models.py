"""Pydantic request/response models for API endpoints."""

from pydantic import BaseModel

from npc_dialog.models import TopicNode


class CreateCharacter(BaseModel):
    name: str
    description: str = ""
    topics: list[TopicNode] = []


class UpdateCharacter(BaseModel):
    description: str | None = None
    topics: list[TopicNode] | None = None


class StartChatBody(BaseModel):
    character_id: str | None = None
    character_name: str | None = None
    player_name: str | None = None
    description: str | None = None


class ReturnChatBody(BaseModel):
    character_id: str
    player_name: str | None = None


class SayBody(BaseModel):
    message: str


class CheckConnectionBody(BaseModel):
    provider_url: str | None = None
    api_key: str | None = None
    model: str | None = None


class SamplingUpdate(BaseModel):
    temperature: float | None = None
    max_tokens: int | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None


class UpdateSettings(BaseModel):
    provider_url: str | None = None
    api_key: str | None = None
    model: str | None = None
    sampling: SamplingUpdate | None = None
    check_topics: bool | None = None
    retry_delay: float | None = None
    check_connection_on_start: bool | None = None
    player_name: str | None = None
