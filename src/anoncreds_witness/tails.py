"""
Tails material.

A tails entry is the public element needed to add or remove one revocation
index from an accumulator or a witness. Entries are a deterministic function
of the registry parameters and the index, so any copy of them can be cached
indefinitely.
"""

from __future__ import annotations

import base64
import json
import logging
from pathlib import Path
from typing import Any, Protocol, Sequence, runtime_checkable

from cryptography.hazmat.primitives import hashes

from anoncreds_witness.algebra import AccumulatorAlgebra
from anoncreds_witness.errors import TailsFetchError, UnknownTailsIndexError

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class TailsSource(Protocol):
    """Read-only, index-keyed provider of tails entries."""

    def fetch(self, index: int) -> Any:
        """Return the tails entry for a 1-based revocation index.

        Raises:
            TailsFetchError: If the entry cannot be retrieved.
        """
        ...


def generate_tails(
    algebra: AccumulatorAlgebra,
    registry_id: str,
    max_cred_num: int,
) -> list[Any]:
    """Generate the tails entries for a registry.

    Entry i (1-based) is hash_to_element("<registry_id>:<i>").

    Args:
        algebra: Accumulator backend.
        registry_id: Revocation registry identifier.
        max_cred_num: Registry capacity.

    Returns:
        List of max_cred_num entries; position 0 holds index 1.
    """
    if max_cred_num < 1:
        raise ValueError("max_cred_num must be positive")
    return [
        algebra.hash_to_element(f"{registry_id}:{index}".encode("utf-8"))
        for index in range(1, max_cred_num + 1)
    ]


def tails_hash(algebra: AccumulatorAlgebra, entries: Sequence[Any]) -> str:
    """Content digest of a tails list (base64url SHA-256, no padding)."""
    digest = hashes.Hash(hashes.SHA256())
    for entry in entries:
        digest.update(algebra.encode(entry).encode("ascii"))
        digest.update(b"\n")
    return base64.urlsafe_b64encode(digest.finalize()).decode().rstrip("=")


class MemoryTailsSource:
    """Tails source backed by an in-memory list of entries."""

    def __init__(self, entries: Sequence[Any]) -> None:
        self._entries = tuple(entries)

    @classmethod
    def generate(
        cls,
        algebra: AccumulatorAlgebra,
        registry_id: str,
        max_cred_num: int,
    ) -> MemoryTailsSource:
        """Build a source from freshly generated tails."""
        return cls(generate_tails(algebra, registry_id, max_cred_num))

    def __len__(self) -> int:
        return len(self._entries)

    def fetch(self, index: int) -> Any:
        if index < 1 or index > len(self._entries):
            raise UnknownTailsIndexError(
                f"Tails index {index} out of range [1, {len(self._entries)}]"
            )
        return self._entries[index - 1]


def write_tails_file(
    path: str | Path,
    algebra: AccumulatorAlgebra,
    registry_id: str,
    entries: Sequence[Any],
) -> str:
    """Write a tails file and return its content hash.

    The file is JSON: registry_id, max_cred_num, tails_hash and the encoded
    entries in index order.
    """
    digest = tails_hash(algebra, entries)
    document = {
        "registry_id": registry_id,
        "max_cred_num": len(entries),
        "tails_hash": digest,
        "entries": [algebra.encode(entry) for entry in entries],
    }
    Path(path).write_text(json.dumps(document, indent=2), encoding="utf-8")
    return digest


class FileTailsSource:
    """Tails source backed by a local JSON tails file.

    The file is read lazily on the first fetch and its content hash is
    checked before any entry is handed out.
    """

    def __init__(
        self,
        path: str | Path,
        algebra: AccumulatorAlgebra,
        expected_hash: str | None = None,
    ) -> None:
        """Initialize the source.

        Args:
            path: Location of the tails file.
            algebra: Backend used to decode entries.
            expected_hash: Hash published with the registry definition. When
                omitted the hash recorded in the file itself is checked.
        """
        self.path = Path(path)
        self.algebra = algebra
        self.expected_hash = expected_hash
        self._source: MemoryTailsSource | None = None

    def fetch(self, index: int) -> Any:
        if self._source is None:
            self._source = MemoryTailsSource(self._load())
        return self._source.fetch(index)

    def _load(self) -> list[Any]:
        LOGGER.debug("Loading tails file %s", self.path)
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
            entries = [self.algebra.decode(item) for item in document["entries"]]
        except OSError as e:
            raise TailsFetchError(f"Cannot read tails file {self.path}: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise TailsFetchError(f"Malformed tails file {self.path}: {e}") from e

        expected = self.expected_hash or document.get("tails_hash")
        actual = tails_hash(self.algebra, entries)
        if expected != actual:
            raise TailsFetchError(
                f"Tails file hash mismatch for {self.path}: "
                f"expected {expected}, got {actual}"
            )
        return entries
