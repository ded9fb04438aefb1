"""In-memory stand-ins for the ffmpeg engine."""

from __future__ import annotations

import asyncio
import itertools
from typing import Callable, Optional, Sequence

from convert_hub.conversion.errors import EngineCommandError, EngineLoadError

Transform = Callable[[list[str], bytes], bytes]


def _echo(args: list[str], data: bytes) -> bytes:
    return data


class FakeEngine:
    """Keeps workspace files in a dict and records every command.

    ``transform`` receives the argument list and the bytes of the ``-i``
    input and returns what the command "writes" to its last argument.
    """

    def __init__(
        self,
        transform: Optional[Transform] = None,
        *,
        delay: float = 0.0,
    ) -> None:
        self.files: dict[str, bytes] = {}
        self.commands: list[list[str]] = []
        self.deleted: list[str] = []
        self.closed = False
        self._transform = transform or _echo
        self._delay = delay
        self._counter = itertools.count(1)

    def scoped_name(self, label: str, extension: str) -> str:
        return f"job{next(self._counter):03d}-{label}{extension}"

    async def write(self, name: str, data: bytes) -> None:
        self.files[name] = data

    async def exec(self, args: Sequence[str]) -> None:
        command = list(args)
        self.commands.append(command)
        if self._delay:
            await asyncio.sleep(self._delay)
        source = command[command.index("-i") + 1]
        self.files[command[-1]] = self._transform(command, self.files[source])

    async def read(self, name: str) -> bytes:
        try:
            return self.files[name]
        except KeyError as exc:
            raise EngineCommandError(f"missing output {name}") from exc

    async def delete(self, name: str) -> None:
        self.deleted.append(name)
        self.files.pop(name, None)

    async def close(self) -> None:
        self.closed = True


class CountingLoader:
    """Engine loader that counts calls and can fail a set number of times."""

    def __init__(
        self,
        engine: Optional[FakeEngine] = None,
        *,
        failures: int = 0,
        delay: float = 0.01,
    ) -> None:
        self.engine = engine or FakeEngine()
        self.calls = 0
        self._failures = failures
        self._delay = delay

    async def __call__(self) -> FakeEngine:
        self.calls += 1
        await asyncio.sleep(self._delay)
        if self.calls <= self._failures:
            raise EngineLoadError(f"load attempt {self.calls} failed")
        return self.engine
