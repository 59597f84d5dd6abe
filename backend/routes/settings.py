"""Health check, settings, and connection check endpoints."""

from fastapi import APIRouter, HTTPException, Request
from pydantic import ValidationError

from backend import storage
from backend.chat_config import apply_config, build_params, self_check_running, start_self_check
from npc_dialog.llm import CompletionClient, FixedDelay

from .models import CheckConnectionBody, UpdateSettings

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.post("/check-connection")
async def check_connection(body: CheckConnectionBody):
    """Single-attempt check against the configured (or given) completion backend."""
    config = storage.get_config()
    api_key = body.api_key if body.api_key is not None else storage.get_api_key()
    client = CompletionClient(
        api_key=lambda: api_key,
        provider_url=body.provider_url or config["provider_url"],
        model=body.model or config["model"],
        timeout=10,
    )
    ok = await client.check_connection(retry=FixedDelay(0, max_attempts=1))
    return {"ok": ok}


@router.get("/settings")
async def get_settings():
    """Get global app settings. The API key itself is never returned."""
    return storage.public_config()


@router.patch("/settings")
async def update_settings(body: UpdateSettings, request: Request):
    """Update global app settings (partial merge) and apply them to the chat.

    The merged config is validated before it is saved. A self-check still
    retrying at startup is restarted against the new backend.
    """
    fields = {
        key: value for key, value in body.model_dump(exclude_unset=True).items()
        if value is not None
    }
    config = storage.merge_config(fields)
    try:
        build_params(config)
    except ValidationError as e:
        raise HTTPException(422, str(e))

    storage.save_config(config)
    apply_config(request.app.state.controller, config)
    if self_check_running(request.app):
        start_self_check(request.app)
    return storage.public_config()
