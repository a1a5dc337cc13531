"""
Revocation registry state and delta history.

A registry's accumulator advances through an append-only chain of
checkpoints. Each step is recorded as an immutable RegistryDelta; the
DeltaLedger keeps those records, indexed by the checkpoints they connect, so
holders can ask for the exact sequence between two accumulator values.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Protocol, Sequence

from anoncreds_witness.algebra import AccumulatorAlgebra, combine_all
from anoncreds_witness.errors import (
    CapacityExceededError,
    InconsistentDeltaError,
    UnknownAccumulatorStateError,
)
from anoncreds_witness.tails import MemoryTailsSource, TailsSource

LOGGER = logging.getLogger(__name__)


class IssuanceType(Enum):
    """How indices enter the accumulator."""

    # Every index is accumulated up front; issuing only hands out an index.
    ISSUANCE_BY_DEFAULT = "ISSUANCE_BY_DEFAULT"
    # Indices are accumulated one delta at a time as credentials are issued.
    ISSUANCE_ON_DEMAND = "ISSUANCE_ON_DEMAND"


def check_index(index: int, max_cred_num: int) -> None:
    """Check a revocation index against the registry capacity.

    Raises:
        ValueError: If the index is not positive.
        CapacityExceededError: If the index exceeds max_cred_num.
    """
    if index < 1:
        raise ValueError(f"Revocation index must be positive, got {index}")
    if index > max_cred_num:
        raise CapacityExceededError(
            f"Revocation index {index} exceeds registry capacity {max_cred_num}"
        )


@dataclass(frozen=True)
class RegistryDelta:
    """Issued/revoked index sets between two accumulator checkpoints."""

    from_value: Any
    to_value: Any
    issued: frozenset[int] = frozenset()
    revoked: frozenset[int] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "issued", frozenset(self.issued))
        object.__setattr__(self, "revoked", frozenset(self.revoked))
        overlap = self.issued & self.revoked
        if overlap:
            raise InconsistentDeltaError(
                f"Indices both issued and revoked in one delta: {sorted(overlap)}"
            )

    def to_dict(self, algebra: AccumulatorAlgebra) -> dict[str, Any]:
        """Wire form of the delta."""
        return {
            "from": algebra.encode(self.from_value),
            "to": algebra.encode(self.to_value),
            "issued": sorted(self.issued),
            "revoked": sorted(self.revoked),
        }

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], algebra: AccumulatorAlgebra
    ) -> RegistryDelta:
        """Parse the wire form produced by to_dict.

        Raises:
            InconsistentDeltaError: If the record is malformed.
        """
        try:
            return cls(
                from_value=algebra.decode(data["from"]),
                to_value=algebra.decode(data["to"]),
                issued=frozenset(int(i) for i in data.get("issued") or ()),
                revoked=frozenset(int(i) for i in data.get("revoked") or ()),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InconsistentDeltaError(f"Malformed registry delta: {e}") from e


def check_chain(
    deltas: Sequence[RegistryDelta],
    start: Any = None,
    end: Any = None,
) -> None:
    """Check that deltas link checkpoint to checkpoint.

    Args:
        deltas: Deltas in application order.
        start: Required from_value of the first delta, if given.
        end: Required to_value of the last delta, if given.

    Raises:
        InconsistentDeltaError: If the chain is broken or misplaced.
    """
    if not deltas:
        if start is not None and end is not None and start != end:
            raise InconsistentDeltaError("Empty delta chain between distinct states")
        return
    if start is not None and deltas[0].from_value != start:
        raise InconsistentDeltaError(
            "Delta chain does not start at the expected accumulator value"
        )
    for position, (current, following) in enumerate(zip(deltas, deltas[1:])):
        if current.to_value != following.from_value:
            raise InconsistentDeltaError(
                f"Delta {position} does not chain to delta {position + 1}"
            )
    if end is not None and deltas[-1].to_value != end:
        raise InconsistentDeltaError(
            "Delta chain does not end at the expected accumulator value"
        )


def compose_deltas(deltas: Sequence[RegistryDelta]) -> RegistryDelta:
    """Synthesize a single delta with the net effect of a chain.

    Raises:
        ValueError: If the chain is empty.
        InconsistentDeltaError: If the chain is broken, or an index is both
            issued and revoked across it.
    """
    if not deltas:
        raise ValueError("Cannot compose an empty delta chain")
    check_chain(deltas)
    issued: set[int] = set()
    revoked: set[int] = set()
    for delta in deltas:
        issued |= delta.issued
        revoked |= delta.revoked
    return RegistryDelta(
        from_value=deltas[0].from_value,
        to_value=deltas[-1].to_value,
        issued=frozenset(issued),
        revoked=frozenset(revoked),
    )


class RegistryLedger(Protocol):
    """Source of published registry history."""

    @property
    def head(self) -> Any:
        """Latest published accumulator value."""
        ...

    def deltas_between(
        self, from_value: Any, to_value: Any
    ) -> tuple[RegistryDelta, ...]:
        """Ordered deltas leading from from_value to to_value."""
        ...


@dataclass(frozen=True)
class _History:
    """Published, immutable view of the ledger."""

    head: Any
    base: int = 0
    deltas: tuple[RegistryDelta, ...] = ()
    # Checkpoint value -> absolute positions of deltas leaving/reaching it.
    by_from: Mapping[Any, tuple[int, ...]] = field(default_factory=dict)
    by_to: Mapping[Any, tuple[int, ...]] = field(default_factory=dict)

    def knows(self, value: Any) -> bool:
        return value == self.head or value in self.by_from or value in self.by_to


def _index_history(
    head: Any, base: int, deltas: tuple[RegistryDelta, ...]
) -> _History:
    by_from: dict[Any, tuple[int, ...]] = {}
    by_to: dict[Any, tuple[int, ...]] = {}
    for offset, delta in enumerate(deltas):
        position = base + offset
        by_from[delta.from_value] = by_from.get(delta.from_value, ()) + (position,)
        by_to[delta.to_value] = by_to.get(delta.to_value, ()) + (position,)
    return _History(head=head, base=base, deltas=deltas, by_from=by_from, by_to=by_to)


class DeltaLedger:
    """Append-only delta history for one registry.

    Writers are serialized by a lock and publish a new immutable history in
    one assignment; readers only ever see a fully published history.
    """

    def __init__(self, initial_value: Any, max_history: int | None = None) -> None:
        """Initialize the ledger.

        Args:
            initial_value: Accumulator value before any delta.
            max_history: Number of deltas to retain. Older checkpoints become
                unknown once pruned. None keeps the whole history.
        """
        if max_history is not None and max_history < 1:
            raise ValueError("max_history must be positive or None")
        self.max_history = max_history
        self._lock = threading.Lock()
        self._history = _History(head=initial_value)

    @property
    def head(self) -> Any:
        return self._history.head

    def __len__(self) -> int:
        return len(self._history.deltas)

    def __iter__(self) -> Iterator[RegistryDelta]:
        return iter(self._history.deltas)

    def append(self, delta: RegistryDelta) -> None:
        """Publish a delta extending the current head.

        Raises:
            InconsistentDeltaError: If the delta does not start at the head.
        """
        with self._lock:
            history = self._history
            if delta.from_value != history.head:
                raise InconsistentDeltaError(
                    "Delta does not start at the current accumulator value"
                )
            base = history.base
            deltas = history.deltas + (delta,)
            if self.max_history is not None and len(deltas) > self.max_history:
                pruned = len(deltas) - self.max_history
                base += pruned
                deltas = deltas[pruned:]
                LOGGER.debug("Pruned %d deltas from registry history", pruned)
            self._history = _index_history(delta.to_value, base, deltas)

    def deltas_between(
        self, from_value: Any, to_value: Any
    ) -> tuple[RegistryDelta, ...]:
        """Return the minimal ordered deltas connecting two checkpoints.

        Raises:
            UnknownAccumulatorStateError: If either value is outside the
                retained history, or to_value does not follow from_value.
        """
        history = self._history
        if not history.knows(from_value):
            raise UnknownAccumulatorStateError(
                "Source accumulator value not found in retained history"
            )
        if not history.knows(to_value):
            raise UnknownAccumulatorStateError(
                "Target accumulator value not found in retained history"
            )
        if from_value == to_value:
            return ()

        to_positions = history.by_to.get(to_value, ())
        spans = []
        for start in history.by_from.get(from_value, ()):
            end = min((p for p in to_positions if p >= start), default=None)
            if end is not None:
                spans.append((end - start, -start, start, end))
        if not spans:
            raise UnknownAccumulatorStateError(
                "Target accumulator value does not follow the source value"
            )
        # Shortest span; the most recent one on ties.
        _, _, start, end = min(spans)
        return history.deltas[start - history.base : end - history.base + 1]


@dataclass(frozen=True)
class RegistryState:
    """Consistent snapshot of a registry at one checkpoint."""

    registry_id: str
    max_cred_num: int
    accumulator: Any
    issued: frozenset[int]
    revoked: frozenset[int]


class RevocationRegistry:
    """Issuer-side revocation registry.

    Tracks which indices are accumulated and publishes one delta per update.
    """

    def __init__(
        self,
        registry_id: str,
        max_cred_num: int,
        algebra: AccumulatorAlgebra,
        tails: TailsSource | None = None,
        issuance_type: IssuanceType = IssuanceType.ISSUANCE_ON_DEMAND,
        max_history: int | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            registry_id: Revocation registry identifier.
            max_cred_num: Fixed capacity; indices run from 1 to max_cred_num.
            algebra: Accumulator backend.
            tails: Tails source. Generated in memory when not provided.
            issuance_type: Whether indices are accumulated up front.
            max_history: Delta retention passed to the DeltaLedger.
        """
        if max_cred_num < 1:
            raise ValueError("max_cred_num must be positive")
        self.registry_id = registry_id
        self.max_cred_num = max_cred_num
        self.algebra = algebra
        self.tails = tails or MemoryTailsSource.generate(
            algebra, registry_id, max_cred_num
        )
        self.issuance_type = issuance_type
        self._lock = threading.RLock()
        self._assigned: set[int] = set()
        self._revoked: frozenset[int] = frozenset()
        if issuance_type == IssuanceType.ISSUANCE_BY_DEFAULT:
            self._issued = frozenset(range(1, max_cred_num + 1))
        else:
            self._issued = frozenset()
        initial = combine_all(
            algebra, (self.tails.fetch(i) for i in sorted(self._issued))
        )
        self.ledger = DeltaLedger(initial, max_history=max_history)

    @property
    def accumulator(self) -> Any:
        return self.ledger.head

    def state(self) -> RegistryState:
        """Snapshot the current checkpoint."""
        with self._lock:
            return RegistryState(
                registry_id=self.registry_id,
                max_cred_num=self.max_cred_num,
                accumulator=self.ledger.head,
                issued=self._issued,
                revoked=self._revoked,
            )

    def issue(self, indices: Iterable[int]) -> RegistryDelta:
        """Accumulate indices and publish the delta."""
        return self.update(issued=indices)

    def revoke(self, indices: Iterable[int]) -> RegistryDelta:
        """Remove indices from the accumulator and publish the delta."""
        return self.update(revoked=indices)

    def update(
        self,
        issued: Iterable[int] = (),
        revoked: Iterable[int] = (),
    ) -> RegistryDelta:
        """Apply one batch of issuances and revocations.

        Args:
            issued: Indices entering the accumulator.
            revoked: Indices leaving the accumulator.

        Returns:
            The published delta.

        Raises:
            CapacityExceededError: If an index exceeds max_cred_num.
            InconsistentDeltaError: If an index is issued twice, reissued
                after revocation, or revoked while not issued.
            TailsFetchError: If tails entries cannot be retrieved. No state
                changes in that case.
        """
        issued = frozenset(issued)
        revoked = frozenset(revoked)
        if not issued and not revoked:
            raise ValueError("Registry update without issued or revoked indices")
        for index in issued | revoked:
            check_index(index, self.max_cred_num)

        with self._lock:
            if issued & self._issued:
                raise InconsistentDeltaError(
                    f"Indices already issued: {sorted(issued & self._issued)}"
                )
            if issued & self._revoked:
                raise InconsistentDeltaError(
                    f"Revoked indices cannot be reissued: {sorted(issued & self._revoked)}"
                )
            if revoked - self._issued:
                raise InconsistentDeltaError(
                    f"Indices not issued: {sorted(revoked - self._issued)}"
                )

            accumulator = self.ledger.head
            for index in sorted(issued):
                accumulator = self.algebra.combine(accumulator, self.tails.fetch(index))
            for index in sorted(revoked):
                accumulator = self.algebra.combine(
                    accumulator, self.algebra.invert(self.tails.fetch(index))
                )

            delta = RegistryDelta(
                from_value=self.ledger.head,
                to_value=accumulator,
                issued=issued,
                revoked=revoked,
            )
            self.ledger.append(delta)
            self._issued = (self._issued | issued) - revoked
            self._revoked = self._revoked | revoked
            self._assigned |= issued
            LOGGER.info(
                "Registry %s updated: %d issued, %d revoked",
                self.registry_id,
                len(issued),
                len(revoked),
            )
            return delta

    def assign(self, index: int | None = None) -> tuple[int, RegistryState]:
        """Assign a revocation index to a new credential.

        On-demand registries accumulate the index and publish a delta;
        issuance-by-default registries only mark it as handed out.

        Args:
            index: Index to assign. The lowest free index when None.

        Returns:
            The index and the registry state the credential is issued against.

        Raises:
            CapacityExceededError: If no free index is left, or index is
                beyond capacity.
            InconsistentDeltaError: If the index was already assigned or
                revoked.
        """
        with self._lock:
            if index is None:
                index = next(
                    (
                        i
                        for i in range(1, self.max_cred_num + 1)
                        if i not in self._assigned and i not in self._revoked
                    ),
                    None,
                )
                if index is None:
                    raise CapacityExceededError(
                        f"Registry {self.registry_id} is full "
                        f"({self.max_cred_num} credentials)"
                    )
            check_index(index, self.max_cred_num)
            if index in self._assigned or index in self._revoked:
                raise InconsistentDeltaError(f"Index {index} already assigned")
            if self.issuance_type == IssuanceType.ISSUANCE_ON_DEMAND:
                self.update(issued=[index])
            self._assigned.add(index)
            return index, self.state()
