# interfaces.py
# SPDX-License-Identifier: MIT
"""Interfaces and protocols shared by openers, the pipeline, and sinks."""

from __future__ import annotations

import enum
from collections.abc import AsyncIterator, Awaitable, Mapping
from typing import Any, Callable, Protocol, Union, runtime_checkable

__all__ = [
    "ByteStream",
    "BlobStreamOpener",
    "ProcessingDecision",
    "RecordProcessor",
    "Record",
    "RecordSink",
]


class ProcessingDecision(enum.Enum):
    """What the pipeline should do after a processor call returns."""

    CONTINUE = "continue"
    STOP = "stop"

    @classmethod
    def from_result(cls, result: Any) -> "ProcessingDecision":
        """Map a processor return value to a decision.

        ``False`` and :attr:`STOP` mean stop; anything else (including
        ``None``) means continue.
        """
        if result is False or result is cls.STOP:
            return cls.STOP
        return cls.CONTINUE


# A processor receives one wrapped record document. It may be a coroutine
# function or a plain callable; returning False requests an early stop.
RecordProcessor = Callable[[str], Union[Awaitable[Any], Any]]

Record = Mapping[str, Any]


@runtime_checkable
class ByteStream(Protocol):
    """Async iterator of raw byte chunks that owns an underlying resource.

    ``aclose`` must be safe to call more than once.
    """

    def __aiter__(self) -> AsyncIterator[bytes]:
        ...

    async def __anext__(self) -> bytes:
        ...

    async def aclose(self) -> None:
        ...


@runtime_checkable
class BlobStreamOpener(Protocol):
    """Opens a fresh stream positioned at the start of the blob for ``key``."""

    async def open(self, key: str) -> ByteStream:
        ...


@runtime_checkable
class RecordSink(Protocol):
    """Destination for parsed records; used by the CLI."""

    def open(self) -> None:
        ...

    def write(self, record: Record) -> None:
        ...

    def close(self) -> None:
        ...

    def abort(self) -> None:
        """Drop partial output, leaving any previous target untouched."""
        ...