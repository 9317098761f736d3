"""
Byte stream plumbing.

BoundedPipe connects the layer producer thread to whoever consumes the
layer bytes (hashing, compression, upload). It is a bounded, blocking
channel: a slow reader backpressures the writer, and a writer-side failure
is delivered to the reader as an exception instead of a silent EOF.

IterStream and HashingReader adapt HTTP response bodies into file-like
objects that tarfile and the decompressors can read from.
"""
from __future__ import annotations

import hashlib
import io
import threading
from typing import Iterable, Iterator, Optional

__all__ = [
    "BoundedPipe",
    "PipeReader",
    "PipeWriter",
    "IterStream",
    "HashingReader",
    "iter_chunks",
    "CHUNK_SIZE",
    "DEFAULT_PIPE_CAPACITY",
]

CHUNK_SIZE = 1024 * 1024  # 1 MiB
DEFAULT_PIPE_CAPACITY = 1024 * 1024  # 1 MiB


class BoundedPipe:
    """
    Bounded in-memory byte channel between one writer and one reader.

    Design Notes:
    - write() blocks while the buffer holds `capacity` bytes
    - read() blocks while the buffer is empty and the writer is open
    - close_writer(error) aborts the stream; every later read raises `error`
      even if buffered bytes remain, so a failed producer can never look
      like a short but valid stream
    - close_reader() makes pending and later writes raise BrokenPipeError,
      which lets the producer thread exit when the consumer goes away
    """

    def __init__(self, capacity: int = DEFAULT_PIPE_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._buffer = bytearray()
        self._cond = threading.Condition()
        self._writer_closed = False
        self._reader_closed = False
        self._error: Optional[BaseException] = None

    @property
    def capacity(self) -> int:
        return self._capacity

    def write(self, data: bytes) -> int:
        """
        Write all of data, blocking while the buffer is full.

        Returns:
            Number of bytes written (always len(data))

        Raises:
            BrokenPipeError: If the reader has been closed
            ValueError: If the writer has already been closed
        """
        view = memoryview(data).cast("B")
        total = len(view)
        with self._cond:
            while view:
                while len(self._buffer) >= self._capacity and not self._reader_closed:
                    self._cond.wait()
                if self._reader_closed:
                    raise BrokenPipeError("pipe reader closed")
                if self._writer_closed:
                    raise ValueError("write to closed pipe")
                n = min(len(view), self._capacity - len(self._buffer))
                self._buffer += view[:n]
                view = view[n:]
                self._cond.notify_all()
        return total

    def read(self, size: int = -1) -> bytes:
        """
        Read up to size bytes, blocking until data, EOF or an error arrives.

        Returns:
            Up to size bytes; b"" at end of stream

        Raises:
            The error passed to close_writer(), if any
        """
        with self._cond:
            while not self._buffer and not self._writer_closed and self._error is None:
                self._cond.wait()
            if self._error is not None:
                raise self._error
            if not self._buffer:
                return b""
            if size is None or size < 0 or size >= len(self._buffer):
                chunk = bytes(self._buffer)
                self._buffer.clear()
            else:
                chunk = bytes(self._buffer[:size])
                del self._buffer[:size]
            self._cond.notify_all()
            return chunk

    def close_writer(self, error: Optional[BaseException] = None) -> None:
        """Signal end of stream, or abort it with error."""
        with self._cond:
            if error is not None and self._error is None:
                self._error = error
            self._writer_closed = True
            self._cond.notify_all()

    def close_reader(self) -> None:
        """Release the reader side; blocked writers wake up with BrokenPipeError."""
        with self._cond:
            self._reader_closed = True
            self._buffer.clear()
            self._cond.notify_all()

    def reader(self) -> PipeReader:
        return PipeReader(self)

    def writer(self) -> PipeWriter:
        return PipeWriter(self)


class PipeReader(io.RawIOBase):
    """Readable file object over the reader end of a BoundedPipe."""

    def __init__(self, pipe: BoundedPipe) -> None:
        super().__init__()
        self._pipe = pipe

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        chunk = self._pipe.read(len(b))
        n = len(chunk)
        b[:n] = chunk
        return n

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            return self.readall()
        return self._pipe.read(size)

    def readall(self) -> bytes:
        parts = []
        while True:
            chunk = self._pipe.read(CHUNK_SIZE)
            if not chunk:
                return b"".join(parts)
            parts.append(chunk)

    def close(self) -> None:
        if not self.closed:
            self._pipe.close_reader()
        super().close()


class PipeWriter(io.RawIOBase):
    """Writable file object over the writer end of a BoundedPipe."""

    def __init__(self, pipe: BoundedPipe) -> None:
        super().__init__()
        self._pipe = pipe

    def writable(self) -> bool:
        return True

    def write(self, b) -> int:
        return self._pipe.write(b)

    def close_with_error(self, error: BaseException) -> None:
        """Abort the stream; the reader gets error on its next read."""
        self._pipe.close_writer(error)
        super().close()

    def close(self) -> None:
        if not self.closed:
            self._pipe.close_writer()
        super().close()


class IterStream(io.RawIOBase):
    """
    Readable file object over an iterator of byte chunks.

    Used to hand an httpx response body (iter_bytes) to tarfile and the
    decompressors, which expect read().
    """

    def __init__(self, chunks: Iterable[bytes]) -> None:
        super().__init__()
        self._chunks: Iterator[bytes] = iter(chunks)
        self._pending = b""

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        while not self._pending:
            try:
                self._pending = next(self._chunks)
            except StopIteration:
                return 0
        n = min(len(b), len(self._pending))
        b[:n] = self._pending[:n]
        self._pending = self._pending[n:]
        return n


class HashingReader(io.RawIOBase):
    """
    Pass-through reader that hashes every byte read from the wrapped stream.

    The digest covers all bytes consumed so far, no matter which layer of
    readers (decompressor, tarfile) pulled them through.
    """

    def __init__(self, raw, algorithm: str = "sha256") -> None:
        super().__init__()
        self._raw = raw
        self._hasher = hashlib.new(algorithm)
        self._algorithm = algorithm
        self.bytes_read = 0

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        chunk = self._raw.read(len(b))
        n = len(chunk)
        b[:n] = chunk
        self._hasher.update(chunk)
        self.bytes_read += n
        return n

    def drain(self) -> int:
        """Consume the remainder of the stream; returns the number of bytes drained."""
        drained = 0
        while True:
            chunk = self.read(CHUNK_SIZE)
            if not chunk:
                return drained
            drained += len(chunk)

    @property
    def digest(self) -> str:
        """Digest of the bytes read so far, as "<algorithm>:<hex>"."""
        return f"{self._algorithm}:{self._hasher.hexdigest()}"


def iter_chunks(stream, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield chunks from a readable file object until EOF."""
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            return
        yield chunk
