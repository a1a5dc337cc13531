"""
Revocation binding.

A credential or presentation carries three revocation fields: the witness,
the registry identifier and the accumulator value the witness was computed
for. Revocable credentials carry all three, non-revocable credentials none.
On the wire the fields are optional and absence is an explicit null (or a
missing key); in memory the binding is one of two variants, so a partial
combination cannot be represented past the validation boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Union

from anoncreds_witness.algebra import AccumulatorAlgebra
from anoncreds_witness.errors import MissingWitnessError, UnexpectedWitnessError
from anoncreds_witness.registry import RegistryLedger
from anoncreds_witness.witness import Witness, WitnessRecomputer

WITNESS_FIELD = "witness"
REGISTRY_ID_FIELD = "rev_reg_id"
REGISTRY_STATE_FIELD = "rev_reg_state"
BINDING_FIELDS = (WITNESS_FIELD, REGISTRY_ID_FIELD, REGISTRY_STATE_FIELD)


@dataclass(frozen=True)
class NonRevocableBinding:
    """Binding of a credential whose definition does not support revocation."""


@dataclass(frozen=True)
class RevocableBinding:
    """Witness plus the registry checkpoint it is valid against."""

    witness: Witness
    registry_id: str
    registry_ref: Any

    def refresh(
        self,
        recomputer: WitnessRecomputer,
        ledger: RegistryLedger,
        target: Any = None,
    ) -> RevocableBinding:
        """Recompute the witness up to a later registry checkpoint.

        Args:
            recomputer: Recomputer for this binding's registry.
            ledger: Registry history.
            target: Accumulator value to reach; the ledger head when None.

        Returns:
            A new binding; this one is left untouched.

        Raises:
            UnknownAccumulatorStateError: If the ledger cannot connect the
                binding's checkpoint to the target.
            RevokedCredentialError: If the credential has been revoked.
        """
        if target is None:
            target = ledger.head
        deltas = ledger.deltas_between(self.registry_ref, target)
        witness, accumulator = recomputer.recompute(
            self.witness, self.registry_ref, deltas
        )
        return RevocableBinding(
            witness=witness,
            registry_id=self.registry_id,
            registry_ref=accumulator,
        )


RevocationBinding = Union[RevocableBinding, NonRevocableBinding]


def present_fields(payload: Mapping[str, Any]) -> list[str]:
    """Names of the binding fields present (not absent, not null)."""
    return [name for name in BINDING_FIELDS if payload.get(name) is not None]


def validate_binding(payload: Mapping[str, Any], revocable: bool) -> None:
    """Check the all-or-nothing rule on a wire payload.

    Args:
        payload: Credential or presentation mapping holding the fields.
        revocable: Whether the credential definition supports revocation.

    Raises:
        MissingWitnessError: Revocable, but a field is absent.
        UnexpectedWitnessError: Non-revocable, but a field is present.
    """
    present = present_fields(payload)
    if revocable and len(present) != len(BINDING_FIELDS):
        missing = [name for name in BINDING_FIELDS if name not in present]
        raise MissingWitnessError(
            f"Revocable credential is missing {', '.join(missing)}"
        )
    if not revocable and present:
        raise UnexpectedWitnessError(
            f"Non-revocable credential carries {', '.join(present)}"
        )


def parse_binding(
    payload: Mapping[str, Any],
    revocable: bool,
    algebra: AccumulatorAlgebra,
) -> RevocationBinding:
    """Validate and decode the binding fields of a wire payload.

    Raises:
        MissingWitnessError: Revocable, but a field is absent or undecodable.
        UnexpectedWitnessError: Non-revocable, but a field is present.
    """
    validate_binding(payload, revocable)
    if not revocable:
        return NonRevocableBinding()
    try:
        return RevocableBinding(
            witness=Witness.from_dict(payload[WITNESS_FIELD], algebra),
            registry_id=str(payload[REGISTRY_ID_FIELD]),
            registry_ref=algebra.decode(payload[REGISTRY_STATE_FIELD]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise MissingWitnessError(f"Malformed revocation binding: {e}") from e


def check_binding(binding: RevocationBinding, revocable: bool) -> None:
    """Check a decoded binding against the declared revocability.

    Raises:
        MissingWitnessError: Revocable definition, non-revocable binding.
        UnexpectedWitnessError: Non-revocable definition, revocable binding.
    """
    if revocable and not isinstance(binding, RevocableBinding):
        raise MissingWitnessError("Revocable credential has no witness binding")
    if not revocable and not isinstance(binding, NonRevocableBinding):
        raise UnexpectedWitnessError("Non-revocable credential carries a witness")


def binding_to_payload(
    binding: RevocationBinding, algebra: AccumulatorAlgebra
) -> dict[str, Any]:
    """Encode a binding as the three optional wire fields.

    The result is validated again before it is returned.
    """
    if isinstance(binding, RevocableBinding):
        payload = {
            WITNESS_FIELD: binding.witness.to_dict(algebra),
            REGISTRY_ID_FIELD: binding.registry_id,
            REGISTRY_STATE_FIELD: algebra.encode(binding.registry_ref),
        }
        validate_binding(payload, revocable=True)
    else:
        payload = dict.fromkeys(BINDING_FIELDS)
        validate_binding(payload, revocable=False)
    return payload


def refresh_binding(
    binding: RevocationBinding,
    revocable: bool,
    recomputer: WitnessRecomputer,
    ledger: RegistryLedger,
    target: Any = None,
) -> RevocationBinding:
    """Bring a credential's binding up to date before building a proof.

    Non-revocable bindings are returned as they are.

    Raises:
        MissingWitnessError, UnexpectedWitnessError: If the binding does not
            match the declared revocability.
    """
    check_binding(binding, revocable)
    if isinstance(binding, NonRevocableBinding):
        return binding
    return binding.refresh(recomputer, ledger, target)
