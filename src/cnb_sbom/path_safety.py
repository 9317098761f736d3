"""
Path handling for extracted SBOM entries.

Tar member names are mapped to flat file names in the destination
directory: the in-image SBOM directory prefix is stripped and the remaining
path separators are replaced with ".". No output name can contain a
separator, so extraction never writes outside the destination directory.
"""
from __future__ import annotations

from pathlib import PurePosixPath
from typing import Optional

from .errors import UnsafeEntryPath

__all__ = ["normalize_member_name", "flatten_entry_path", "output_file_name", "JOIN_CHAR"]

JOIN_CHAR = "."


def normalize_member_name(name: str) -> str:
    """
    Normalize a tar member name to an absolute POSIX path.

    Layer tars name the same file "cnb/sbom/x", "./cnb/sbom/x" or
    "/cnb/sbom/x" depending on the tool that wrote them.

    Examples:
        >>> normalize_member_name("./cnb/sbom/a.json")
        '/cnb/sbom/a.json'

        >>> normalize_member_name("/layers/sbom/launch/x.json")
        '/layers/sbom/launch/x.json'
    """
    while name.startswith("./"):
        name = name[2:]
    return "/" + name.lstrip("/")


def flatten_entry_path(member_name: str, source_prefix: str) -> Optional[str]:
    """
    Flatten a tar member name found under source_prefix.

    Args:
        member_name: Tar member name
        source_prefix: In-image directory, e.g. "/cnb/sbom"

    Returns:
        Flattened name ("a/b.json" -> "a.b.json"), or None if the member is
        not under source_prefix

    Raises:
        UnsafeEntryPath: If the flattened name is empty or contains NUL
    """
    name = normalize_member_name(member_name)
    prefix = normalize_member_name(source_prefix)
    if not name.startswith(prefix):
        return None
    rest = name[len(prefix):].lstrip("/")
    flattened = JOIN_CHAR.join(PurePosixPath(rest).parts) if rest else ""
    if not flattened:
        raise UnsafeEntryPath(f"unsafe path: {member_name} has no file name below {source_prefix}")
    if "\x00" in flattened or "\\" in flattened:
        raise UnsafeEntryPath(f"unsafe path: {member_name}")
    return flattened


def output_file_name(output_prefix: str, flattened: str) -> str:
    """
    Build the output file name "<output_prefix>.<flattened>".

    Examples:
        >>> output_file_name("base", "dead.cdx.json")
        'base.dead.cdx.json'
    """
    return f"{output_prefix}{JOIN_CHAR}{flattened}"
