"""
Progress dialog: owns the state for one job while it is visible.
"""
from __future__ import annotations

import asyncio
import contextlib
from typing import Callable, List, Optional

from client.channel import PROGRESS_WS_URL, ProgressChannel
from core.progress.events import ProgressEvent
from core.progress.state import (
    RUNNING,
    ProgressState,
    apply_event,
    mark_connection_lost,
    status_text,
)


class ProgressDialog:
    def __init__(
        self,
        job_id: str,
        url: str = PROGRESS_WS_URL,
        token: Optional[str] = None,
        on_change: Optional[Callable[["ProgressDialog"], None]] = None,
        channel_factory=ProgressChannel,
        **channel_options,
    ):
        self.job_id = str(job_id or "")
        self.url = url
        self.token = token
        self.on_change = on_change
        self._channel_factory = channel_factory
        self._channel_options = channel_options

        self.visible = False
        self.state: Optional[ProgressState] = None
        self._channel: Optional[ProgressChannel] = None
        self._task: Optional[asyncio.Task] = None
        self._terminal = asyncio.Event()

    @property
    def connected(self) -> bool:
        return bool(self._channel and self._channel.connected)

    async def show(self) -> None:
        if self.visible or not self.job_id:
            return
        self.visible = True
        self.state = None
        self._terminal = asyncio.Event()
        self._channel = self._channel_factory(
            self.job_id,
            self._on_event,
            url=self.url,
            token=self.token,
            on_connection_lost=self._on_connection_lost,
            **self._channel_options,
        )
        self._task = asyncio.create_task(self._channel.run())

    async def hide(self) -> None:
        """Close the socket, stop the reader and reset state."""
        channel, task = self._channel, self._task
        self.visible = False
        self.state = None
        self._channel = None
        self._task = None

        if channel is not None:
            await channel.close()
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    close = hide

    async def set_visible(self, visible: bool) -> None:
        if visible:
            await self.show()
        else:
            await self.hide()

    def _set_state(self, state: Optional[ProgressState]) -> None:
        if state is self.state:
            return
        self.state = state
        if state is not None and state.is_terminal:
            self._terminal.set()
        if self.on_change is not None:
            self.on_change(self)

    def _on_event(self, event: ProgressEvent) -> None:
        if not self.visible:
            return
        self._set_state(apply_event(self.state, event))

    def _on_connection_lost(self) -> None:
        if not self.visible:
            return
        self._set_state(mark_connection_lost(self.state))

    async def wait_terminal(self, timeout: Optional[float] = None) -> Optional[ProgressState]:
        """
        Wait until the job reaches a terminal state or the channel stops.
        Returns the state at that point (None if nothing was received).
        """
        if self._task is None:
            return self.state

        waiter = asyncio.ensure_future(self._terminal.wait())
        try:
            await asyncio.wait({waiter, self._task}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await waiter

        task = self._task
        if task is not None and task.done() and not task.cancelled():
            exc = task.exception()
            if exc is not None:
                raise exc
        return self.state

    def render(self) -> List[str]:
        if not self.visible or self.state is None:
            return []

        state = self.state
        status = status_text(state)
        if not self.connected:
            status += " (Disconnected)"
        lines = [status]

        if state.status == RUNNING:
            lines.append(f"Page {state.current_page} of {state.max_pages} - {state.percentage}%")
        lines.append(f"{state.data_points} data points collected")
        if state.error:
            lines.append(f"Error: {state.error}")
        return lines


__all__ = ["ProgressDialog"]
