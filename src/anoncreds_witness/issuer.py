"""Initial witnesses for newly issued revocable credentials."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from anoncreds_witness.algebra import AccumulatorAlgebra, combine_all
from anoncreds_witness.binding import RevocableBinding
from anoncreds_witness.errors import InvalidWitnessError
from anoncreds_witness.registry import RevocationRegistry, check_index
from anoncreds_witness.tails import TailsSource
from anoncreds_witness.witness import Witness, verify_witness

LOGGER = logging.getLogger(__name__)


def create_witness(
    algebra: AccumulatorAlgebra,
    tails: TailsSource,
    index: int,
    issued: Iterable[int],
    accumulator: Any,
    max_cred_num: int,
) -> Witness:
    """Compute the first witness for a revocation index.

    Args:
        algebra: Accumulator backend.
        tails: Tails source of the registry.
        index: Index assigned to the new credential.
        issued: Indices currently accumulated (with or without index).
        accumulator: Current accumulator value, including index.
        max_cred_num: Registry capacity.

    Returns:
        Witness valid against accumulator.

    Raises:
        CapacityExceededError: If index exceeds max_cred_num.
        TailsFetchError: If a tails entry cannot be retrieved.
        InvalidWitnessError: If the witness does not verify, e.g. because
            accumulator does not match the issued set.
    """
    check_index(index, max_cred_num)
    others = sorted(set(issued) - {index})
    omega = combine_all(algebra, (tails.fetch(i) for i in others))
    witness = Witness(index=index, omega=omega)
    if not verify_witness(algebra, tails, witness, accumulator):
        raise InvalidWitnessError(
            f"Initial witness for index {index} does not verify against the "
            "registry accumulator"
        )
    return witness


def issue_credential(
    registry: RevocationRegistry, index: int | None = None
) -> RevocableBinding:
    """Assign an index in the registry and bind a witness to it.

    Args:
        registry: Issuer-side registry.
        index: Index to use; the lowest free one when None.

    Returns:
        Binding to embed in the issued credential.
    """
    index, state = registry.assign(index)
    witness = create_witness(
        registry.algebra,
        registry.tails,
        index,
        state.issued,
        state.accumulator,
        state.max_cred_num,
    )
    LOGGER.debug("Issued witness for index %d in registry %s", index, state.registry_id)
    return RevocableBinding(
        witness=witness,
        registry_id=state.registry_id,
        registry_ref=state.accumulator,
    )
