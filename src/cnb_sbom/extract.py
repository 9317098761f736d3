"""
SBOM layer extraction.

extract_layer() locates one layer of a remote image by diffID, streams its
blob from the registry, decompresses it according to the layer media type,
and writes every regular file found under the SBOM directory into a flat
destination directory.

Design Notes:
- The blob is never buffered whole: registry response -> HashingReader ->
  decompressor -> tarfile stream reader -> output file
- Every entry's copied byte count is checked against its tar header; a
  short entry aborts extraction with SizeMismatchError, and files written
  before it stay in place
- Once the archive is consumed the remaining blob bytes are drained so
  the blob can be checked against its manifest digest
"""
from __future__ import annotations

import gzip
import logging
import tarfile
import zlib
from pathlib import Path
from typing import BinaryIO, Dict, List

import zstandard as zstd

from .digest import Digest
from .errors import DecompressionError, FlattenCollisionError, LocalIOError, SizeMismatchError
from .image import RemoteImage
from .path_safety import flatten_entry_path, normalize_member_name, output_file_name
from .storage.oci_errors import OciDigestMismatch
from .storage.oci_media_types import LAYER_COMPRESSION
from .streams import CHUNK_SIZE, HashingReader

__all__ = ["extract_layer", "open_decompressed", "REGULAR_TYPES"]

logger = logging.getLogger(__name__)

REGULAR_TYPES = (tarfile.REGTYPE, tarfile.AREGTYPE)

_DECOMPRESSION_ERRORS = (gzip.BadGzipFile, zlib.error, zstd.ZstdError, EOFError, tarfile.ReadError)


def open_decompressed(raw: BinaryIO, media_type: str) -> BinaryIO:
    """
    Wrap raw in a decompressing reader chosen by layer media type.

    The wrapper never closes raw.

    Raises:
        DecompressionError: If media_type is not a known layer type
    """
    compression = LAYER_COMPRESSION.get(media_type)
    if compression is None:
        raise DecompressionError(f"unsupported layer media type: {media_type}")
    if compression == "gzip":
        return gzip.GzipFile(fileobj=raw, mode="rb")
    if compression == "zstd":
        return zstd.ZstdDecompressor().stream_reader(raw, read_across_frames=True, closefd=False)
    return raw


def _copy_entry(source: BinaryIO, path: Path, member: tarfile.TarInfo) -> int:
    """Copy one entry to path; returns bytes written after checking them against the header."""
    written = 0
    try:
        out = open(path, "wb")
    except OSError as e:
        raise LocalIOError(f"cannot create {path}: {e}") from e
    with out:
        while True:
            try:
                chunk = source.read(CHUNK_SIZE)
            except tarfile.ReadError as e:
                # The archive ended inside this entry's data
                raise SizeMismatchError(
                    f"invalid tar: size mismatch for {member.name}: "
                    f"expected {member.size} bytes, archive ended after {written}",
                    path=member.name, expected=member.size, actual=written,
                ) from e
            if not chunk:
                break
            try:
                out.write(chunk)
            except OSError as e:
                raise LocalIOError(f"cannot write {path}: {e}") from e
            written += len(chunk)

    if written != member.size:
        raise SizeMismatchError(
            f"invalid tar: size mismatch for {member.name}: expected {member.size} bytes, got {written}",
            path=member.name, expected=member.size, actual=written,
        )
    return written


def _untar(tar: tarfile.TarFile, dest: Path, source_prefix: str, output_prefix: str) -> List[Path]:
    written: List[Path] = []
    seen: Dict[str, str] = {}
    for member in tar:
        if member.type not in REGULAR_TYPES:
            continue
        flattened = flatten_entry_path(member.name, source_prefix)
        if flattened is None:
            continue

        name = output_file_name(output_prefix, flattened)
        # A repeated member name is a later version of the same file
        if name in seen and normalize_member_name(seen[name]) != normalize_member_name(member.name):
            raise FlattenCollisionError(
                f"tar entries {seen[name]} and {member.name} both extract to {name}",
                output_name=name, first=seen[name], second=member.name,
            )
        seen[name] = member.name

        source = tar.extractfile(member)
        path = dest / name
        size = _copy_entry(source, path, member)
        logger.debug(f"Extracted {member.name} -> {path} ({size} bytes)")
        if path not in written:
            written.append(path)
    return written


def extract_layer(image: RemoteImage, diff_id: str, dest_dir: str | Path,
                  source_prefix: str, output_prefix: str) -> List[Path]:
    """
    Extract the files under source_prefix of one image layer.

    Args:
        image: Image holding the layer
        diff_id: Uncompressed layer digest ("sha256:...")
        dest_dir: Existing directory receiving the files
        source_prefix: In-image directory to extract, e.g. "/cnb/sbom"
        output_prefix: Output file name prefix, e.g. "base"

    Returns:
        Paths written, in archive order

    Raises:
        DigestParseError: If diff_id is empty or malformed
        LayerLookupError: If no layer has diff_id
        RemoteAccessError: If the blob cannot be fetched
        DecompressionError: If the blob is not a readable (compressed) tar
        SizeMismatchError: If an entry is shorter than its header says
        FlattenCollisionError: If two entries map to the same output name
        UnsafeEntryPath: If an entry flattens to an unusable name
        LocalIOError: If output files cannot be written
        OciDigestMismatch: If the blob does not match its manifest digest
    """
    digest = Digest.parse(diff_id)
    descriptor = image.layer_by_diff_id(digest)
    dest = Path(dest_dir)
    if not dest.is_dir():
        raise LocalIOError(f"destination {dest} is not a directory")

    repo = image.ref.repository
    logger.debug(f"Extracting {source_prefix} from layer {descriptor.digest} ({descriptor.media_type})")
    with image.registry.open_blob(repo, descriptor.digest) as blob:
        hashed = HashingReader(blob)
        try:
            stream = open_decompressed(hashed, descriptor.media_type)
            with tarfile.open(fileobj=stream, mode="r|") as tar:
                written = _untar(tar, dest, source_prefix, output_prefix)
        except _DECOMPRESSION_ERRORS as e:
            raise DecompressionError(f"cannot read layer {descriptor.digest}: {e}") from e
        hashed.drain()

    if hashed.digest != descriptor.digest:
        raise OciDigestMismatch(
            f"layer blob {descriptor.digest} hashes to {hashed.digest}",
            expected=descriptor.digest, actual=hashed.digest,
        )
    logger.info(f"Extracted {len(written)} file(s) from {source_prefix} as {output_prefix}.*")
    return written
