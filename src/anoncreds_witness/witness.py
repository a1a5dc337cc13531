"""
Non-revocation witnesses.

A witness for index i against accumulator value A is the combination of the
tails entries of every other accumulated index, so that

    combine(witness, tails(i)) == A

Holders keep their witness current by folding in the registry deltas that
separate their checkpoint from the latest one: tails entries of newly issued
indices are combined in, those of revoked indices are combined out. This
never touches the full issued set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

from anoncreds_witness.algebra import AccumulatorAlgebra
from anoncreds_witness.errors import (
    InconsistentDeltaError,
    InvalidWitnessError,
    RevokedCredentialError,
)
from anoncreds_witness.registry import RegistryDelta, check_chain
from anoncreds_witness.tails import TailsSource

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Witness:
    """Witness element for one revocation index."""

    index: int
    omega: Any

    def to_dict(self, algebra: AccumulatorAlgebra) -> dict[str, Any]:
        """Wire form of the witness."""
        return {"rev_idx": self.index, "omega": algebra.encode(self.omega)}

    @classmethod
    def from_dict(cls, data: dict[str, Any], algebra: AccumulatorAlgebra) -> Witness:
        """Parse the wire form produced by to_dict.

        Raises:
            KeyError, TypeError, ValueError: If the record is malformed.
        """
        return cls(index=int(data["rev_idx"]), omega=algebra.decode(data["omega"]))


def verify_witness(
    algebra: AccumulatorAlgebra,
    tails: TailsSource,
    witness: Witness,
    accumulator: Any,
) -> bool:
    """Check that a witness proves its index is accumulated in accumulator."""
    return algebra.combine(witness.omega, tails.fetch(witness.index)) == accumulator


class WitnessRecomputer:
    """Holder-side incremental witness update.

    Each call only works on local values; one recomputer can serve many
    credentials from different threads at once.
    """

    def __init__(
        self,
        algebra: AccumulatorAlgebra,
        tails: TailsSource,
        registry_id: str | None = None,
    ) -> None:
        """Initialize the recomputer.

        Args:
            algebra: Accumulator backend.
            tails: Tails source of the registry the witnesses belong to.
            registry_id: Registry identifier, used in errors and logs.
        """
        self.algebra = algebra
        self.tails = tails
        self.registry_id = registry_id

    def recompute(
        self,
        witness: Witness,
        accumulator: Any,
        deltas: Sequence[RegistryDelta],
    ) -> tuple[Witness, Any]:
        """Advance a witness across a chain of registry deltas.

        Args:
            witness: Current witness, valid against accumulator.
            accumulator: Accumulator value the witness was computed for.
            deltas: Deltas in chain order, starting at accumulator.

        Returns:
            The new witness and the accumulator value it is valid against.

        Raises:
            InconsistentDeltaError: If the deltas do not chain from
                accumulator, or one of them issues the witness's own index.
            RevokedCredentialError: If any delta revokes the own index.
            TailsFetchError: If a tails entry cannot be retrieved.
            InvalidWitnessError: If the result does not verify.
        """
        check_chain(deltas, start=accumulator)
        own = witness.index
        for delta in deltas:
            if own in delta.revoked:
                raise RevokedCredentialError(own, self.registry_id)
            if own in delta.issued:
                raise InconsistentDeltaError(
                    f"Delta issues index {own}, which is already accumulated"
                )

        omega = witness.omega
        for delta in deltas:
            # Distinct indices commute, so order inside one delta is free.
            for index in sorted(delta.revoked):
                omega = self.algebra.combine(
                    omega, self.algebra.invert(self.tails.fetch(index))
                )
            for index in sorted(delta.issued):
                omega = self.algebra.combine(omega, self.tails.fetch(index))

        target = deltas[-1].to_value if deltas else accumulator
        updated = Witness(index=own, omega=omega) if deltas else witness
        if not verify_witness(self.algebra, self.tails, updated, target):
            raise InvalidWitnessError(
                f"Witness for index {own} does not verify against the "
                "target accumulator value"
            )
        LOGGER.debug(
            "Recomputed witness for index %d over %d deltas", own, len(deltas)
        )
        return updated, target
