"""
Revocation witness error classes.

Errors fall into four groups:
- Structural: the revocation binding triple is malformed.
- Staleness/chain: the delta history does not connect the requested states.
- Revocation: the credential's own index was revoked (terminal).
- Resource/I/O: tails material or registry history could not be fetched.
"""

from __future__ import annotations


class RevocationError(Exception):
    """Base exception for revocation witness errors."""


class MissingWitnessError(RevocationError):
    """Revocable credential without a complete witness/registry binding."""


class UnexpectedWitnessError(RevocationError):
    """Non-revocable credential carrying witness/registry fields."""


class InconsistentDeltaError(RevocationError):
    """Registry deltas do not chain, or contradict the registry state."""


class UnknownAccumulatorStateError(RevocationError):
    """Accumulator value not present in the retained delta history."""


class RevokedCredentialError(RevocationError):
    """The credential's own index has been revoked.

    Terminal: retrying against later registry states will not help.
    """

    def __init__(self, index: int, registry_id: str | None = None) -> None:
        self.index = index
        self.registry_id = registry_id
        where = f" in registry {registry_id}" if registry_id else ""
        super().__init__(f"Credential revoked (index {index}{where})")


class TailsFetchError(RevocationError):
    """A tails entry could not be retrieved."""


class UnknownTailsIndexError(TailsFetchError):
    """The tails source has no entry for the requested index.

    Raised for malformed requests; never retried.
    """


class CapacityExceededError(RevocationError):
    """Revocation index beyond the registry's max_cred_num."""


class InvalidWitnessError(RevocationError):
    """A computed witness does not verify against its accumulator value."""


class LedgerFetchError(RevocationError):
    """Registry history could not be retrieved from a remote ledger."""
