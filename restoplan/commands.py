"""Outbound persistence commands.

The store never awaits the gateway. Each committed mutation enqueues one
command describing it; a :class:`PersistenceWorker` drains the queue in FIFO
order and reports failures through a callback. There is no cancellation of
dispatched commands and no automatic retry.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, List, Optional, Union

from .logging_utils import log_error, log_persistence
from .persistence import PersistenceGateway
from .schemas import PlacedItem


@dataclass(frozen=True)
class CreateItem:
    layout_id: str
    item: PlacedItem


@dataclass(frozen=True)
class UpdateItem:
    layout_id: str
    item: PlacedItem


@dataclass(frozen=True)
class DeleteItem:
    layout_id: str
    item_id: str


@dataclass(frozen=True)
class AssociateTable:
    item_id: str
    external_id: str


PersistCommand = Union[CreateItem, UpdateItem, DeleteItem, AssociateTable]


def describe(command: PersistCommand) -> str:
    if isinstance(command, (CreateItem, UpdateItem)):
        return f"{type(command).__name__}({command.item.id})"
    if isinstance(command, DeleteItem):
        return f"DeleteItem({command.item_id})"
    return f"AssociateTable({command.item_id} -> {command.external_id})"


class CommandQueue:
    """FIFO of pending persistence commands."""

    def __init__(self) -> None:
        self._commands: Deque[PersistCommand] = deque()
        self._wakeups: List[Callable[[], None]] = []

    def push(self, command: PersistCommand) -> None:
        self._commands.append(command)
        for wakeup in self._wakeups:
            wakeup()

    def pop(self) -> Optional[PersistCommand]:
        return self._commands.popleft() if self._commands else None

    def add_wakeup(self, callback: Callable[[], None]) -> None:
        """Register a callback invoked on every push (used by the worker)."""
        self._wakeups.append(callback)

    def remove_wakeup(self, callback: Callable[[], None]) -> None:
        if callback in self._wakeups:
            self._wakeups.remove(callback)

    @property
    def pending(self) -> List[PersistCommand]:
        return list(self._commands)

    def __len__(self) -> int:
        return len(self._commands)


async def dispatch(gateway: PersistenceGateway, command: PersistCommand) -> None:
    """Apply one command to ``gateway``."""
    if isinstance(command, CreateItem):
        await gateway.create_item(command.layout_id, command.item)
    elif isinstance(command, UpdateItem):
        await gateway.update_item(command.layout_id, command.item)
    elif isinstance(command, DeleteItem):
        await gateway.delete_item(command.layout_id, command.item_id)
    elif isinstance(command, AssociateTable):
        await gateway.associate_table(command.item_id, command.external_id)
    else:
        raise TypeError(f"Unknown persistence command: {command!r}")


ErrorCallback = Callable[[PersistCommand, Exception], Union[None, Awaitable[None]]]


class PersistenceWorker:
    """Drains a :class:`CommandQueue` into a gateway.

    Use :meth:`drain` to flush on demand (tests, shutdown) or :meth:`start` to
    run as a background task woken by the queue on every push.
    """

    def __init__(
        self,
        queue: CommandQueue,
        gateway: PersistenceGateway,
        on_error: Optional[ErrorCallback] = None,
    ):
        self.queue = queue
        self.gateway = gateway
        self.on_error = on_error
        self._wakeup = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._stopping = False

    async def _report(self, command: PersistCommand, exc: Exception) -> None:
        log_error(f"[Worker] {describe(command)} failed: {exc}")
        if self.on_error is None:
            return
        result = self.on_error(command, exc)
        if asyncio.iscoroutine(result):
            await result

    async def drain(self) -> int:
        """Dispatch every queued command in order. Returns how many were dispatched."""
        dispatched = 0
        while True:
            command = self.queue.pop()
            if command is None:
                return dispatched
            dispatched += 1
            try:
                await dispatch(self.gateway, command)
                log_persistence(f"[Worker] {describe(command)} ok")
            except Exception as exc:  # gateways are foreign code; keep draining
                await self._report(command, exc)

    def start(self) -> asyncio.Task:
        """Run the worker as a background task on the current event loop."""
        if self._task is not None and not self._task.done():
            return self._task
        self._stopping = False
        self.queue.add_wakeup(self._wakeup.set)
        self._task = asyncio.create_task(self._run())
        return self._task

    async def _run(self) -> None:
        while not self._stopping:
            await self.drain()
            await self._wakeup.wait()
            self._wakeup.clear()
        await self.drain()

    async def stop(self) -> None:
        """Flush outstanding commands and stop the background task."""
        if self._task is None:
            return
        self._stopping = True
        self._wakeup.set()
        await self._task
        self.queue.remove_wakeup(self._wakeup.set)
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
