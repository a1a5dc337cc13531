"""
Accumulator algebra.

The witness logic only needs an abelian group: a way to combine two
elements, invert one, and compare the results. Concrete backends (pairing
groups in production) plug in behind the AccumulatorAlgebra protocol.

ModularAlgebra is a small reference backend over the multiplicative group
modulo a prime. It is meant for tests and tooling, not for production use.
"""

from __future__ import annotations

from typing import Any, Iterable, Protocol, runtime_checkable

from cryptography.hazmat.primitives import hashes

# P-521 field prime (2^521 - 1).
DEFAULT_MODULUS = (1 << 521) - 1


@runtime_checkable
class AccumulatorAlgebra(Protocol):
    """Capability interface over accumulator and tails elements."""

    def identity(self) -> Any:
        """Neutral element (the empty accumulator)."""
        ...

    def combine(self, a: Any, b: Any) -> Any:
        """Group operation; commutative and associative."""
        ...

    def invert(self, a: Any) -> Any:
        """Inverse element, so combine(a, invert(a)) == identity()."""
        ...

    def exponentiate(self, a: Any, k: int) -> Any:
        """Combine a with itself k times."""
        ...

    def hash_to_element(self, data: bytes) -> Any:
        """Deterministically map bytes to a non-identity element."""
        ...

    def encode(self, a: Any) -> str:
        """Serialize an element for the wire."""
        ...

    def decode(self, data: str) -> Any:
        """Parse an element produced by encode."""
        ...


def combine_all(algebra: AccumulatorAlgebra, elements: Iterable[Any]) -> Any:
    """Fold elements together, starting from the identity."""
    result = algebra.identity()
    for element in elements:
        result = algebra.combine(result, element)
    return result


class ModularAlgebra:
    """Multiplicative group of integers modulo a prime."""

    def __init__(self, modulus: int = DEFAULT_MODULUS) -> None:
        """Initialize the backend.

        Args:
            modulus: Prime modulus. Primality is not checked.
        """
        if modulus < 3:
            raise ValueError("modulus must be an odd prime")
        self.modulus = modulus
        self._width = (modulus.bit_length() + 7) // 8

    def identity(self) -> int:
        return 1

    def combine(self, a: int, b: int) -> int:
        return (a * b) % self.modulus

    def invert(self, a: int) -> int:
        return pow(a, -1, self.modulus)

    def exponentiate(self, a: int, k: int) -> int:
        return pow(a, k, self.modulus)

    def hash_to_element(self, data: bytes) -> int:
        """Hash to a quadratic residue other than 0 and 1.

        Two SHA-512 blocks are concatenated so the reduction modulo the
        prime is close to uniform.
        """
        counter = 0
        while True:
            wide = b"".join(
                self._digest(counter.to_bytes(4, "big") + bytes([block]) + data)
                for block in (0, 1)
            )
            value = pow(int.from_bytes(wide, "big") % self.modulus, 2, self.modulus)
            if value > 1:
                return value
            counter += 1

    def encode(self, a: int) -> str:
        return a.to_bytes(self._width, "big").hex()

    def decode(self, data: str) -> int:
        try:
            value = int.from_bytes(bytes.fromhex(data), "big")
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid element encoding: {e}") from e
        if not 0 < value < self.modulus:
            raise ValueError("Element out of range for modulus")
        return value

    def _digest(self, data: bytes) -> bytes:
        digest = hashes.Hash(hashes.SHA512())
        digest.update(data)
        return digest.finalize()

    def __repr__(self) -> str:
        return f"<ModularAlgebra modulus_bits={self.modulus.bit_length()}>"
