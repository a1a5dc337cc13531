"""Shared fixtures."""

import pytest

from anoncreds_witness import ModularAlgebra, RevocationRegistry, WitnessRecomputer

REGISTRY_ID = "WgWxqztrNooG92RXvxSTWv:4:WgWxqztrNooG92RXvxSTWv:3:CL:20:tag:CL_ACCUM:0"


@pytest.fixture
def algebra():
    """Reference accumulator backend."""
    return ModularAlgebra()


@pytest.fixture
def registry(algebra):
    """Empty on-demand registry with capacity 5."""
    return RevocationRegistry(REGISTRY_ID, 5, algebra)


@pytest.fixture
def recomputer(registry):
    """Recomputer sharing the registry's tails."""
    return WitnessRecomputer(
        registry.algebra, registry.tails, registry_id=registry.registry_id
    )
