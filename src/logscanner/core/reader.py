"""Incremental, bounded-memory reading of log sources."""

from __future__ import annotations

import codecs
import gzip
import json
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiofiles
from aiofiles.threadpool import wrap

from .errors import SourceError
from .models import LogFormat, SourceUnit

_WHITESPACE = " \t\r\n"
_BOM = "\ufeff"
_EXCERPT_CHARS = 4096


class _ElementScanner:
    """Finds the end of a JSON array element without parsing it.

    Tracks string and bracket nesting across ``feed`` calls, so a malformed
    element can be skipped chunk by chunk.
    """

    def __init__(self) -> None:
        self.depth = 0
        self.in_string = False
        self.escaped = False

    def feed(self, text: str, start: int = 0) -> int | None:
        """Return the index of the top-level "," or "]" ending the element, if seen."""
        for i in range(start, len(text)):
            ch = text[i]
            if self.in_string:
                if self.escaped:
                    self.escaped = False
                elif ch == "\\":
                    self.escaped = True
                elif ch == '"':
                    self.in_string = False
            elif ch == '"':
                self.in_string = True
            elif ch in "{[":
                self.depth += 1
            elif ch in "}]":
                if self.depth:
                    self.depth -= 1
                elif ch == "]":
                    return i
            elif ch == "," and not self.depth:
                return i
        return None


@asynccontextmanager
async def open_source(path: str | Path):
    """Open a log file for async binary reading (plain or gzip)."""
    path = Path(path)
    if path.suffix.lower() == ".gz":
        f = gzip.open(path, mode="rb")
        af = wrap(f)
        try:
            yield af
        finally:
            await af.close()
    else:
        async with aiofiles.open(path, mode="rb") as f:
            yield f


class SourceReader:
    """Forward-only reader producing SourceUnits from one file.

    Lines are read in ``chunk_size`` pieces, so peak memory is bounded by the
    chunk size plus the longest line (or JSON array element), independent of
    file size. The reader can be iterated once; a retried job opens a new one.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        encoding: str = "utf-8",
        decode_errors: str = "replace",
        chunk_size: int = 64 * 1024,
        max_element_chars: int = 16 * 1024 * 1024,
    ) -> None:
        self.path = Path(path)
        self.encoding = encoding
        self.decode_errors = decode_errors
        self.chunk_size = chunk_size
        self.max_element_chars = max_element_chars
        self.bytes_read = 0
        self._consumed = False

    @property
    def size(self) -> int | None:
        """On-disk size in bytes, or None when it does not reflect content (gzip)."""
        if self.path.suffix.lower() == ".gz":
            return None
        try:
            return os.path.getsize(self.path)
        except OSError:
            return None

    async def units(self, fmt: LogFormat) -> AsyncIterator[SourceUnit]:
        """Yield the source's units in order; I/O failures raise SourceError."""
        if self._consumed:
            raise RuntimeError("SourceReader can only be iterated once")
        self._consumed = True

        if not self.path.is_file():
            raise SourceError(f"Log file not found: {self.path}")

        try:
            async with open_source(self.path) as f:
                if fmt is LogFormat.JSON:
                    head = await self._read_chunk(f)
                    if head.lstrip(b" \t\r\n\xef\xbb\xbf").startswith(b"["):
                        async for unit in self._array_units(f, head):
                            yield unit
                        return
                    async for unit in self._line_units(f, head):
                        yield unit
                    return

                async for unit in self._line_units(f, b""):
                    yield unit
        except OSError as exc:
            raise SourceError(f"Cannot read log file {self.path}: {exc}") from exc

    async def _read_chunk(self, f) -> bytes:
        chunk = await f.read(self.chunk_size)
        self.bytes_read += len(chunk)
        return chunk

    def _decode(self, raw: bytes) -> str:
        return raw.decode(self.encoding, errors=self.decode_errors)

    async def _line_units(self, f, head: bytes) -> AsyncIterator[SourceUnit]:
        line_no = 0
        pending = head
        while True:
            chunk = await self._read_chunk(f)
            if chunk:
                pending += chunk
            *lines, pending = pending.split(b"\n")
            if not chunk and pending:
                lines.append(pending)
                pending = b""
            for raw in lines:
                line_no += 1
                text = self._decode(raw).rstrip("\r")
                if line_no == 1:
                    text = text.lstrip(_BOM)
                if text.strip():
                    yield SourceUnit(line_no=line_no, text=text)
            if not chunk:
                return

    async def _array_units(self, f, head: bytes) -> AsyncIterator[SourceUnit]:
        decoder = codecs.getincrementaldecoder(self.encoding)(errors=self.decode_errors)
        parser = json.JSONDecoder()
        buf = decoder.decode(head).lstrip(_WHITESPACE + _BOM)[1:]  # drop "["
        pos = 0
        index = 0
        eof = False

        while True:
            while pos < len(buf) and (buf[pos] in _WHITESPACE or buf[pos] == ","):
                pos += 1

            if pos >= len(buf):
                if eof:
                    return
                buf, pos = buf[pos:], 0
                chunk = await self._read_chunk(f)
                eof = not chunk
                buf += decoder.decode(chunk, final=eof)
                continue

            if buf[pos] == "]":
                return

            try:
                _, end = parser.raw_decode(buf, pos)
            except json.JSONDecodeError:
                scanner = _ElementScanner()
                stop = scanner.feed(buf, pos)
                if stop is None and not eof and len(buf) - pos <= self.max_element_chars:
                    # Possibly just incomplete; read more and decode again.
                    buf, pos = buf[pos:], 0
                    chunk = await self._read_chunk(f)
                    eof = not chunk
                    buf += decoder.decode(chunk, final=eof)
                    continue

                # Malformed element: report it as one unit and resume after it.
                index += 1
                if stop is not None:
                    yield SourceUnit(line_no=index, text=buf[pos:stop].rstrip(_WHITESPACE))
                    pos = stop
                    continue
                excerpt = buf[pos : pos + _EXCERPT_CHARS]
                while stop is None and not eof:
                    chunk = await self._read_chunk(f)
                    eof = not chunk
                    buf, pos = decoder.decode(chunk, final=eof), 0
                    stop = scanner.feed(buf)
                yield SourceUnit(line_no=index, text=excerpt)
                pos = len(buf) if stop is None else stop
                continue

            if end == len(buf) and not eof:
                # A scalar may continue in the next chunk; make sure it is complete.
                buf, pos = buf[pos:], 0
                chunk = await self._read_chunk(f)
                eof = not chunk
                buf += decoder.decode(chunk, final=eof)
                if chunk:
                    continue
                _, end = parser.raw_decode(buf, pos)

            index += 1
            yield SourceUnit(line_no=index, text=buf[pos:end])
            pos = end
