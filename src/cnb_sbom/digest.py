"""
Content digest parsing.

Label values and layer identifiers are "<algorithm>:<hex>" strings. Only
sha256 is accepted, matching what registries and the CNB lifecycle write.
"""
from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass

from .errors import DigestParseError

__all__ = ["Digest", "sha256_digest"]

_SHA256_HEX_RE = re.compile(r"^[a-f0-9]{64}$")


@dataclass(frozen=True)
class Digest:
    """
    A parsed content digest.

    Invariants:
    - algorithm: always "sha256"
    - hex: exactly 64 lowercase hex characters
    """
    algorithm: str
    hex: str

    @classmethod
    def parse(cls, value: str) -> Digest:
        """
        Parse a digest string.

        Args:
            value: Digest string such as "sha256:2c26b46b..."

        Returns:
            Parsed Digest

        Raises:
            DigestParseError: If value is empty, has no algorithm separator,
                names an unsupported algorithm, or has a malformed hex part
        """
        if not value:
            raise DigestParseError("cannot parse hash: empty digest")
        if ":" not in value:
            raise DigestParseError(f"cannot parse hash: {value!r} has no algorithm prefix")
        algorithm, hex_part = value.split(":", 1)
        if algorithm != "sha256":
            raise DigestParseError(f"cannot parse hash: unsupported algorithm {algorithm!r}")
        if not _SHA256_HEX_RE.match(hex_part):
            raise DigestParseError(f"cannot parse hash: {value!r} is not a sha256 digest")
        return cls(algorithm=algorithm, hex=hex_part)

    @property
    def short(self) -> str:
        """First 8 hex characters, used to name attached SBOM files."""
        return self.hex[:8]

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.hex}"


def sha256_digest(data: bytes) -> str:
    """Return the "sha256:<hex>" digest of data."""
    return f"sha256:{hashlib.sha256(data).hexdigest()}"
