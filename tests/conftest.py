"""Shared test helpers: a scripted completion client."""

from collections.abc import Iterable

import pytest

from npc_dialog.models import Message, SamplingParams


class StubClient:
    """Returns queued replies in order and records every request."""

    def __init__(self, replies: Iterable[str] = ()) -> None:
        self.replies = list(replies)
        self.calls: list[tuple[list[Message], SamplingParams]] = []
        self.connection_checks = 0

    async def complete(self, messages: Iterable[Message], params: SamplingParams) -> Message:
        self.calls.append((list(messages), params))
        if not self.replies:
            raise AssertionError("StubClient ran out of replies")
        return Message(role="assistant", content=self.replies.pop(0))

    async def check_connection(self, retry=None) -> bool:
        self.connection_checks += 1
        return True


@pytest.fixture
def stub_client() -> StubClient:
    return StubClient()
