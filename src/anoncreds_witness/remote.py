"""
HTTP collaborators.

HttpTailsSource fetches single tails entries from a tails server and
HttpRegistryLedger fetches published registry deltas. Both retry transient
failures (timeouts, network errors, 5xx responses) a bounded number of times; other
failures surface at once.

Endpoints:
    GET {tails_url}/{index}                 -> {"index": 1, "entry": "<hex>"}
    GET {ledger_url}/head                   -> {"accumulator": "<hex>"}
    GET {ledger_url}/deltas?from=..&to=..   -> {"deltas": [{"from", "to",
                                                 "issued", "revoked"}, ...]}
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from anoncreds_witness.algebra import AccumulatorAlgebra
from anoncreds_witness.errors import (
    LedgerFetchError,
    TailsFetchError,
    UnknownAccumulatorStateError,
    UnknownTailsIndexError,
)
from anoncreds_witness.registry import RegistryDelta, check_chain
from anoncreds_witness.retry import RetryPolicy

LOGGER = logging.getLogger(__name__)

# Request failures worth another attempt.
TRANSIENT_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    httpx.HTTPStatusError,
)


class _HttpCollaborator:
    """Shared request handling for the HTTP collaborators."""

    def __init__(
        self,
        base_url: str,
        algebra: AccumulatorAlgebra,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        retry: RetryPolicy | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Service root URL.
            algebra: Backend used to decode elements.
            timeout: HTTP request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
            retry: Retry policy for transient failures.
        """
        self.base_url = base_url.rstrip("/")
        self.algebra = algebra
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.retry = retry or RetryPolicy()

    def _get(self, path: str, params: dict[str, str] | None = None) -> httpx.Response:
        """GET a path, retrying timeouts, network errors and 5xx responses.

        Returns:
            The response, whose status is below 500.

        Raises:
            httpx.RequestError, httpx.HTTPStatusError: Once retries are
                exhausted, or at once for non-transient request errors.
        """
        url = f"{self.base_url}/{path}"

        def attempt() -> httpx.Response:
            with httpx.Client(timeout=self.timeout, verify=self.verify_ssl) as client:
                response = client.get(
                    url,
                    params=params,
                    headers={"Accept": "application/json"},
                )
            if response.status_code >= 500:
                response.raise_for_status()
            return response

        return self.retry.call(
            attempt,
            transient=TRANSIENT_ERRORS,
            description=f"GET {url}",
        )


class HttpTailsSource(_HttpCollaborator):
    """Tails source backed by a tails server.

    Entries never change once published, so they are cached indefinitely.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._cache: dict[int, Any] = {}

    def fetch(self, index: int) -> Any:
        """Fetch the tails entry for an index.

        Raises:
            UnknownTailsIndexError: If the server has no such index.
            TailsFetchError: If the entry cannot be retrieved.
        """
        if index in self._cache:
            return self._cache[index]

        try:
            response = self._get(str(index))
        except httpx.HTTPStatusError as e:
            raise TailsFetchError(
                f"HTTP error fetching tails entry {index}: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise TailsFetchError(f"Network error fetching tails entry {index}: {e}") from e

        if response.status_code == 404:
            raise UnknownTailsIndexError(f"Tails server has no entry {index}")
        if response.is_error:
            raise TailsFetchError(
                f"HTTP error fetching tails entry {index}: {response.status_code}"
            )

        try:
            data = response.json()
            if int(data["index"]) != index:
                raise ValueError(f"server answered for index {data['index']}")
            entry = self.algebra.decode(data["entry"])
        except (KeyError, TypeError, ValueError) as e:
            raise TailsFetchError(f"Invalid tails entry {index}: {e}") from e

        self._cache[index] = entry
        return entry

    def clear_cache(self) -> None:
        """Clear the tails entry cache."""
        self._cache.clear()


class HttpRegistryLedger(_HttpCollaborator):
    """Registry history published by a ledger service."""

    @property
    def head(self) -> Any:
        """Latest accumulator value published by the ledger.

        Raises:
            LedgerFetchError: If the value cannot be retrieved.
        """
        data = self._get_json("head")
        try:
            return self.algebra.decode(data["accumulator"])
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerFetchError(f"Invalid registry head: {e}") from e

    def deltas_between(
        self, from_value: Any, to_value: Any
    ) -> tuple[RegistryDelta, ...]:
        """Fetch the deltas connecting two accumulator values.

        Equal values are still sent to the ledger, so a pruned or unknown
        checkpoint is reported even when no deltas are needed.

        Raises:
            UnknownAccumulatorStateError: If the ledger does not know one of
                the values.
            InconsistentDeltaError: If the returned deltas do not chain.
            LedgerFetchError: If the history cannot be retrieved.
        """
        data = self._get_json(
            "deltas",
            params={
                "from": self.algebra.encode(from_value),
                "to": self.algebra.encode(to_value),
            },
        )
        records = data.get("deltas")
        if not isinstance(records, list):
            raise LedgerFetchError("Ledger response has no deltas list")
        deltas = tuple(RegistryDelta.from_dict(record, self.algebra) for record in records)
        check_chain(deltas, start=from_value, end=to_value)
        LOGGER.debug("Fetched %d registry deltas from %s", len(deltas), self.base_url)
        return deltas

    def _get_json(
        self, path: str, params: dict[str, str] | None = None
    ) -> dict[str, Any]:
        try:
            response = self._get(path, params=params)
        except httpx.HTTPStatusError as e:
            raise LedgerFetchError(
                f"HTTP error fetching registry {path}: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise LedgerFetchError(f"Network error fetching registry {path}: {e}") from e

        if response.status_code == 404:
            raise UnknownAccumulatorStateError(
                f"Ledger does not know the requested accumulator state ({path})"
            )
        if response.is_error:
            raise LedgerFetchError(
                f"HTTP error fetching registry {path}: {response.status_code}"
            )
        try:
            data = response.json()
        except ValueError as e:
            raise LedgerFetchError(f"Invalid JSON from registry ledger ({path})") from e
        if not isinstance(data, dict):
            raise LedgerFetchError(f"Unexpected registry response ({path})")
        return data
