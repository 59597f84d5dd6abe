import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from backend import storage
from backend.chat_config import build_client, build_params, start_self_check, stop_self_check
from backend.routes import router
from npc_dialog.conversation import ConversationController
from npc_dialog.models import ChatReply

load_dotenv(Path(__file__).parent.parent / ".env")

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def _log_reply(reply: ChatReply) -> None:
    logger.info("%s: %s", reply.character_name, reply.reply)


def create_app(data_dir: Path | None = None) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    storage.init_storage(resolved)
    config = storage.get_config()

    controller = ConversationController(
        build_client(config),
        params=build_params(config),
        check_topics=bool(config["check_topics"]),
        handlers=[_log_reply],
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if config["check_connection_on_start"]:
            start_self_check(app)
        yield
        stop_self_check(app)

    app = FastAPI(title="NPC Dialog", lifespan=lifespan)
    app.state.controller = controller
    app.state.self_check = None
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
