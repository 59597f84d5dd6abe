"""Wiring between the stored config and the running conversation controller."""

import asyncio
import logging
from typing import Any

from fastapi import FastAPI

from backend import storage
from npc_dialog.conversation import ConversationController
from npc_dialog.llm import CompletionClient, FixedDelay
from npc_dialog.models import SamplingParams

logger = logging.getLogger(__name__)


def build_client(config: dict[str, Any]) -> CompletionClient:
    return CompletionClient(
        api_key=storage.get_api_key,
        provider_url=config["provider_url"],
        model=config["model"],
        retry=FixedDelay(config["retry_delay"]),
    )


def build_params(config: dict[str, Any]) -> SamplingParams:
    """Sampling parameters from config. Raises pydantic.ValidationError."""
    return SamplingParams(**config["sampling"])


def apply_config(controller: ConversationController, config: dict[str, Any]) -> None:
    """Push config into a running controller. Takes effect from the next turn.

    Everything is built before the controller is touched, so a config that
    fails validation leaves the controller as it was.
    """
    params = build_params(config)
    client = build_client(config)
    controller.use_client(client)
    controller.params = params
    controller.check_topics = bool(config["check_topics"])


def start_self_check(app: FastAPI) -> asyncio.Task:
    """(Re)start the controller's connection self-check in the background."""
    stop_self_check(app)
    task = asyncio.create_task(app.state.controller.check_connection())
    app.state.self_check = task
    return task


def stop_self_check(app: FastAPI) -> None:
    task = getattr(app.state, "self_check", None)
    if task is not None and not task.done():
        logger.info("Cancelling running connection self-check")
        task.cancel()
    app.state.self_check = None


def self_check_running(app: FastAPI) -> bool:
    task = getattr(app.state, "self_check", None)
    return task is not None and not task.done()
