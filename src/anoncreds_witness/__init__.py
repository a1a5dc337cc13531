"""
anoncreds-witness - revocation witnesses for accumulator-based credentials.

Supports:
- Initial witness computation at issuance
- Incremental witness recomputation over registry deltas
- Append-only registry delta history with configurable retention
- All-or-nothing validation of the witness/registry binding
- Tails and registry history over HTTP
"""

from anoncreds_witness.algebra import AccumulatorAlgebra, ModularAlgebra
from anoncreds_witness.binding import (
    NonRevocableBinding,
    RevocableBinding,
    binding_to_payload,
    check_binding,
    parse_binding,
    refresh_binding,
    validate_binding,
)
from anoncreds_witness.errors import (
    CapacityExceededError,
    InconsistentDeltaError,
    InvalidWitnessError,
    LedgerFetchError,
    MissingWitnessError,
    RevocationError,
    RevokedCredentialError,
    TailsFetchError,
    UnexpectedWitnessError,
    UnknownAccumulatorStateError,
    UnknownTailsIndexError,
)
from anoncreds_witness.issuer import create_witness, issue_credential
from anoncreds_witness.registry import (
    DeltaLedger,
    IssuanceType,
    RegistryDelta,
    RegistryState,
    RevocationRegistry,
    compose_deltas,
)
from anoncreds_witness.remote import HttpRegistryLedger, HttpTailsSource
from anoncreds_witness.retry import RetryPolicy
from anoncreds_witness.tails import (
    FileTailsSource,
    MemoryTailsSource,
    TailsSource,
    generate_tails,
)
from anoncreds_witness.witness import Witness, WitnessRecomputer, verify_witness

__version__ = "0.1.0"

__all__ = [
    "AccumulatorAlgebra",
    "ModularAlgebra",
    "NonRevocableBinding",
    "RevocableBinding",
    "binding_to_payload",
    "check_binding",
    "parse_binding",
    "refresh_binding",
    "validate_binding",
    "CapacityExceededError",
    "InconsistentDeltaError",
    "InvalidWitnessError",
    "LedgerFetchError",
    "MissingWitnessError",
    "RevocationError",
    "RevokedCredentialError",
    "TailsFetchError",
    "UnexpectedWitnessError",
    "UnknownAccumulatorStateError",
    "UnknownTailsIndexError",
    "create_witness",
    "issue_credential",
    "DeltaLedger",
    "IssuanceType",
    "RegistryDelta",
    "RegistryState",
    "RevocationRegistry",
    "compose_deltas",
    "HttpRegistryLedger",
    "HttpTailsSource",
    "RetryPolicy",
    "FileTailsSource",
    "MemoryTailsSource",
    "TailsSource",
    "generate_tails",
    "Witness",
    "WitnessRecomputer",
    "verify_witness",
]
