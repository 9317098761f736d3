"""
Single-file layer construction.

build_layer() turns one local file into an image layer holding a single
regular-file tar entry. Nothing is materialized: every time the layer's
bytes are requested the source file is opened, a producer thread encodes
the tar archive into a BoundedPipe, and the caller reads from the other
end. Hashing, compression and upload all consume that stream.
"""
from __future__ import annotations

import hashlib
import logging
import os
import tarfile
import threading
import zlib
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Optional

import zstandard as zstd

from .errors import LocalIOError
from .storage.oci_media_types import COMPRESSIONS, layer_media_type
from .streams import DEFAULT_PIPE_CAPACITY, BoundedPipe, PipeWriter, iter_chunks

__all__ = ["Layer", "LayerDigests", "build_layer", "open_tar_stream", "FILE_MODE"]

logger = logging.getLogger(__name__)

# Attached SBOM files are owner read/write only
FILE_MODE = 0o600

GZIP_LEVEL = 6
ZSTD_LEVEL = 3


@dataclass(frozen=True)
class LayerDigests:
    """
    Identity of a layer.

    Invariants:
    - diff_id: sha256 of the uncompressed tar stream
    - digest: sha256 of the stored (compressed) blob
    - size: byte length of the stored blob
    """
    diff_id: str
    digest: str
    size: int


class _Passthrough:
    """Compressor interface for uncompressed layers."""

    def compress(self, data: bytes) -> bytes:
        return data

    def flush(self) -> bytes:
        return b""


def _compressor(compression: str):
    """Return a fresh streaming compressor with compress()/flush()."""
    if compression == "gzip":
        # wbits=31 selects the gzip container; zlib writes mtime 0, so
        # repeated passes over the same tar produce identical blobs
        return zlib.compressobj(GZIP_LEVEL, zlib.DEFLATED, 31)
    if compression == "zstd":
        return zstd.ZstdCompressor(level=ZSTD_LEVEL).compressobj()
    if compression == "none":
        return _Passthrough()
    raise ValueError(f"Unknown compression '{compression}'. Use one of: {', '.join(COMPRESSIONS)}")


class Layer:
    """
    A layer whose content is produced on demand by an opener.

    The opener returns a fresh readable stream of the uncompressed tar on
    every call, so the layer can be read any number of times (once to
    compute its digests, once more to upload it) without holding a file
    handle between reads.
    """

    def __init__(self, opener: Callable[[], BinaryIO], *,
                 compression: str = "gzip", media_type: Optional[str] = None) -> None:
        if compression not in COMPRESSIONS:
            raise ValueError(f"Unknown compression '{compression}'. Use one of: {', '.join(COMPRESSIONS)}")
        self._opener = opener
        self.compression = compression
        self.media_type = media_type or layer_media_type(None, compression)
        self._digests: Optional[LayerDigests] = None

    def uncompressed(self) -> BinaryIO:
        """Open a new stream of the uncompressed tar."""
        return self._opener()

    def compressed_chunks(self) -> Iterator[bytes]:
        """Yield the stored (compressed) blob in chunks, reading the tar lazily."""
        compressor = _compressor(self.compression)
        with closing(self.uncompressed()) as stream:
            for chunk in iter_chunks(stream):
                out = compressor.compress(chunk)
                if out:
                    yield out
        tail = compressor.flush()
        if tail:
            yield tail

    def compute_digests(self) -> LayerDigests:
        """
        Compute diffID, digest and size in one streaming pass.

        The result is cached; it is known before any remote mutation.

        Raises:
            LocalIOError: If the source file cannot be opened or read
        """
        if self._digests is not None:
            return self._digests

        diff_hasher = hashlib.sha256()
        blob_hasher = hashlib.sha256()
        size = 0
        compressor = _compressor(self.compression)
        with closing(self.uncompressed()) as stream:
            for chunk in iter_chunks(stream):
                diff_hasher.update(chunk)
                out = compressor.compress(chunk)
                blob_hasher.update(out)
                size += len(out)
        tail = compressor.flush()
        blob_hasher.update(tail)
        size += len(tail)

        self._digests = LayerDigests(
            diff_id=f"sha256:{diff_hasher.hexdigest()}",
            digest=f"sha256:{blob_hasher.hexdigest()}",
            size=size,
        )
        logger.debug(f"Layer digests: diff_id={self._digests.diff_id} digest={self._digests.digest} size={size}")
        return self._digests

    @property
    def diff_id(self) -> str:
        return self.compute_digests().diff_id

    @property
    def digest(self) -> str:
        return self.compute_digests().digest

    @property
    def size(self) -> int:
        return self.compute_digests().size


def _file_header(name: str, size: int) -> tarfile.TarInfo:
    """Canonical header: fixed owner, mtime and mode so every pass is byte-identical."""
    info = tarfile.TarInfo(name)
    info.size = size
    info.mode = FILE_MODE
    info.type = tarfile.REGTYPE
    info.uid = 0
    info.gid = 0
    info.uname = ""
    info.gname = ""
    info.mtime = 0
    return info


def _produce_tar(source: BinaryIO, writer: PipeWriter, name: str, size: int) -> None:
    """Producer thread body: encode one entry into the pipe, then close it."""
    try:
        with source:
            with tarfile.open(fileobj=writer, mode="w|", format=tarfile.USTAR_FORMAT) as tar:
                tar.addfile(_file_header(name, size), source)
    except BrokenPipeError:
        logger.debug(f"Layer consumer went away while writing {name}")
        writer.close_with_error(LocalIOError(f"layer stream for {name} closed by reader"))
        return
    except OSError as e:
        logger.debug(f"Layer producer failed for {name}: {e}")
        writer.close_with_error(LocalIOError(f"failed to copy {name} into layer: {e}"))
        return
    except Exception as e:
        logger.debug(f"Layer producer failed for {name}: {e}")
        writer.close_with_error(e)
        return
    writer.close()


def open_tar_stream(source_path: str | Path, name: str, *,
                    pipe_capacity: int = DEFAULT_PIPE_CAPACITY) -> BinaryIO:
    """
    Open source_path and start streaming a one-entry tar of it.

    Args:
        source_path: Local file to wrap
        name: Entry name inside the archive
        pipe_capacity: Bytes buffered between producer and reader

    Returns:
        Readable stream of the tar archive

    Raises:
        LocalIOError: If the file cannot be opened or stat'ed
    """
    try:
        source = open(source_path, "rb")
    except OSError as e:
        raise LocalIOError(f"cannot open {source_path}: {e}") from e
    try:
        size = os.fstat(source.fileno()).st_size
    except OSError as e:
        source.close()
        raise LocalIOError(f"cannot stat {source_path}: {e}") from e

    pipe = BoundedPipe(pipe_capacity)
    producer = threading.Thread(
        target=_produce_tar,
        args=(source, pipe.writer(), name, size),
        name=f"layer-producer:{name}",
        daemon=True,
    )
    producer.start()
    return pipe.reader()


def build_layer(source_path: str | Path, dest_path_in_layer: str, *,
                compression: str = "gzip",
                media_type: Optional[str] = None,
                pipe_capacity: int = DEFAULT_PIPE_CAPACITY) -> Layer:
    """
    Build a layer holding source_path at dest_path_in_layer.

    The file is not touched until the layer's bytes are requested.

    Args:
        source_path: Local file to put in the layer
        dest_path_in_layer: Absolute path of the file inside the image
        compression: "gzip", "zstd" or "none"
        media_type: Layer media type (defaults to the OCI type for compression)
        pipe_capacity: Bytes buffered between producer and consumer

    Returns:
        Lazily-streamed Layer
    """
    source_path = Path(source_path)

    def opener() -> BinaryIO:
        return open_tar_stream(source_path, dest_path_in_layer, pipe_capacity=pipe_capacity)

    return Layer(opener, compression=compression, media_type=media_type)
