"""Adapter from the SDK's ``ServerSession`` to ``SessionTransport``."""

from __future__ import annotations

import weakref

from mcp.server.session import ServerSession
from pydantic import AnyUrl


class ServerSessionTransport:
    """Push notifications through a live low-level ``ServerSession``.

    Only a weak reference is kept, so the manager session bound to a
    protocol session does not keep that protocol session alive.
    """

    def __init__(self, session: ServerSession):
        self._session_ref = weakref.ref(session)

    @property
    def session(self) -> ServerSession:
        session = self._session_ref()
        if session is None:
            raise RuntimeError("Protocol session is closed")
        return session

    async def send_tool_list_changed(self) -> None:
        await self.session.send_tool_list_changed()

    async def send_resource_updated(self, uri: str) -> None:
        await self.session.send_resource_updated(AnyUrl(uri))

    async def send_progress(self, token: str | int, message: str) -> None:
        await self.session.send_progress_notification(
            progress_token=token, progress=1, message=message
        )
