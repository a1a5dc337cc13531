"""Tests for retries and the HTTP collaborators."""

import httpx
import pytest
import respx
from httpx import Response

from anoncreds_witness import (
    HttpRegistryLedger,
    HttpTailsSource,
    InconsistentDeltaError,
    LedgerFetchError,
    RetryPolicy,
    TailsFetchError,
    UnknownAccumulatorStateError,
    UnknownTailsIndexError,
    WitnessRecomputer,
    issue_credential,
    verify_witness,
)

TAILS_URL = "https://tails.example.com/registry-1"
LEDGER_URL = "https://ledger.example.com/registry-1"

NO_WAIT = RetryPolicy(max_attempts=3, interval=0.0)


def tails_handler(registry):
    """respx side effect serving a registry's tails entries."""

    def handler(request):
        index = int(request.url.path.rsplit("/", 1)[-1])
        if index < 1 or index > registry.max_cred_num:
            return Response(404, json={"error": "unknown index"})
        entry = registry.tails.fetch(index)
        return Response(
            200, json={"index": index, "entry": registry.algebra.encode(entry)}
        )

    return handler


def deltas_handler(registry):
    """respx side effect serving a registry's delta history."""
    algebra = registry.algebra

    def handler(request):
        params = request.url.params
        try:
            deltas = registry.ledger.deltas_between(
                algebra.decode(params["from"]), algebra.decode(params["to"])
            )
        except UnknownAccumulatorStateError:
            return Response(404, json={"error": "unknown state"})
        return Response(200, json={"deltas": [d.to_dict(algebra) for d in deltas]})

    return handler


class TestRetryPolicy:
    """Tests for bounded retries."""

    def test_retries_transient_then_succeeds(self):
        """Transient failures are retried."""
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("down")
            return "ok"

        assert NO_WAIT.call(flaky, transient=(ConnectionError,)) == "ok"
        assert len(attempts) == 3

    def test_gives_up_after_limit(self):
        """The last transient error surfaces once attempts run out."""
        attempts = []

        def broken():
            attempts.append(1)
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            NO_WAIT.call(broken, transient=(ConnectionError,))
        assert len(attempts) == 3

    def test_permanent_errors_not_retried(self):
        """Errors outside the transient set propagate at once."""
        attempts = []

        def invalid():
            attempts.append(1)
            raise KeyError("nope")

        with pytest.raises(KeyError):
            NO_WAIT.call(invalid, transient=(ConnectionError,))
        assert len(attempts) == 1

    def test_backoff_intervals(self):
        """Each wait grows by the backoff rate."""
        policy = RetryPolicy(interval=0.5, backoff=1.0)
        assert policy.next_interval(1) == 0.5
        assert policy.next_interval(2) == 1.0
        assert policy.next_interval(3) == 2.0
        assert NO_WAIT.next_interval(2) == 0.0

    def test_default_waits_never_shrink(self):
        """Sub-second intervals still back off between attempts."""
        policy = RetryPolicy()
        waits = [policy.next_interval(n) for n in range(1, 6)]

        assert waits[0] == 0.5
        assert waits == sorted(waits)
        assert waits[-1] > waits[0]

    def test_invalid_limit(self):
        """At least one attempt is made."""
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestHttpTailsSource:
    """Tests for the tails server client."""

    @respx.mock
    def test_fetch_and_cache(self, registry):
        """Entries are fetched once and cached."""
        route = respx.get(f"{TAILS_URL}/2").mock(side_effect=tails_handler(registry))
        source = HttpTailsSource(TAILS_URL, registry.algebra, retry=NO_WAIT)

        first = source.fetch(2)
        second = source.fetch(2)

        assert first == second == registry.tails.fetch(2)
        assert route.call_count == 1

        source.clear_cache()
        source.fetch(2)
        assert route.call_count == 2

    @respx.mock
    def test_unknown_index_not_retried(self, registry):
        """A 404 is a malformed request, not a transient failure."""
        route = respx.get(f"{TAILS_URL}/9").mock(return_value=Response(404))
        source = HttpTailsSource(TAILS_URL, registry.algebra, retry=NO_WAIT)

        with pytest.raises(UnknownTailsIndexError):
            source.fetch(9)
        assert route.call_count == 1

    @respx.mock
    def test_server_error_retried(self, registry):
        """5xx responses are retried until one succeeds."""
        entry = registry.algebra.encode(registry.tails.fetch(1))
        route = respx.get(f"{TAILS_URL}/1").mock(
            side_effect=[
                Response(503),
                Response(502),
                Response(200, json={"index": 1, "entry": entry}),
            ]
        )
        source = HttpTailsSource(TAILS_URL, registry.algebra, retry=NO_WAIT)

        assert source.fetch(1) == registry.tails.fetch(1)
        assert route.call_count == 3

    @respx.mock
    def test_network_error_exhausts_retries(self, registry):
        """Persistent network failures surface as TailsFetchError."""
        route = respx.get(f"{TAILS_URL}/1").mock(
            side_effect=httpx.ConnectError("connection refused")
        )
        source = HttpTailsSource(TAILS_URL, registry.algebra, retry=NO_WAIT)

        with pytest.raises(TailsFetchError) as excinfo:
            source.fetch(1)
        assert not isinstance(excinfo.value, UnknownTailsIndexError)
        assert route.call_count == 3

    @respx.mock
    def test_unsupported_protocol_not_retried(self, registry):
        """Request errors that cannot succeed later fail on the first attempt."""
        route = respx.get(f"{TAILS_URL}/1").mock(
            side_effect=httpx.UnsupportedProtocol("unsupported scheme")
        )
        source = HttpTailsSource(TAILS_URL, registry.algebra, retry=NO_WAIT)

        with pytest.raises(TailsFetchError):
            source.fetch(1)
        assert route.call_count == 1

    @respx.mock
    def test_timeout_retried(self, registry):
        """Timeouts are transient."""
        entry = registry.algebra.encode(registry.tails.fetch(1))
        route = respx.get(f"{TAILS_URL}/1").mock(
            side_effect=[
                httpx.ReadTimeout("slow"),
                Response(200, json={"index": 1, "entry": entry}),
            ]
        )
        source = HttpTailsSource(TAILS_URL, registry.algebra, retry=NO_WAIT)

        assert source.fetch(1) == registry.tails.fetch(1)
        assert route.call_count == 2

    @respx.mock
    def test_wrong_index_in_response(self, registry):
        """The server must answer for the requested index."""
        entry = registry.algebra.encode(registry.tails.fetch(2))
        respx.get(f"{TAILS_URL}/1").mock(
            return_value=Response(200, json={"index": 2, "entry": entry})
        )
        source = HttpTailsSource(TAILS_URL, registry.algebra, retry=NO_WAIT)

        with pytest.raises(TailsFetchError):
            source.fetch(1)


class TestHttpRegistryLedger:
    """Tests for the registry ledger client."""

    @respx.mock
    def test_head(self, registry):
        """The head is decoded from the ledger."""
        registry.issue([1])
        respx.get(f"{LEDGER_URL}/head").mock(
            return_value=Response(
                200, json={"accumulator": registry.algebra.encode(registry.accumulator)}
            )
        )
        ledger = HttpRegistryLedger(LEDGER_URL, registry.algebra, retry=NO_WAIT)

        assert ledger.head == registry.accumulator

    @respx.mock
    def test_deltas_between(self, registry):
        """Deltas come back parsed and in chain order."""
        d1 = registry.issue([1, 2])
        d2 = registry.revoke([2])
        respx.get(f"{LEDGER_URL}/deltas").mock(side_effect=deltas_handler(registry))
        ledger = HttpRegistryLedger(LEDGER_URL, registry.algebra, retry=NO_WAIT)

        assert ledger.deltas_between(d1.from_value, d2.to_value) == (d1, d2)

    @respx.mock
    def test_same_state(self, registry):
        """Equal known checkpoints need no deltas."""
        registry.issue([1])
        route = respx.get(f"{LEDGER_URL}/deltas").mock(
            side_effect=deltas_handler(registry)
        )
        ledger = HttpRegistryLedger(LEDGER_URL, registry.algebra, retry=NO_WAIT)

        assert ledger.deltas_between(registry.accumulator, registry.accumulator) == ()
        assert route.call_count == 1

    @respx.mock
    def test_same_unknown_state(self, registry):
        """An unknown checkpoint is reported even as its own target."""
        registry.issue([1])
        respx.get(f"{LEDGER_URL}/deltas").mock(side_effect=deltas_handler(registry))
        ledger = HttpRegistryLedger(LEDGER_URL, registry.algebra, retry=NO_WAIT)

        with pytest.raises(UnknownAccumulatorStateError):
            ledger.deltas_between(12345, 12345)

    @respx.mock
    def test_unknown_state(self, registry):
        """A 404 maps to UnknownAccumulatorStateError."""
        registry.issue([1])
        respx.get(f"{LEDGER_URL}/deltas").mock(side_effect=deltas_handler(registry))
        ledger = HttpRegistryLedger(LEDGER_URL, registry.algebra, retry=NO_WAIT)

        with pytest.raises(UnknownAccumulatorStateError):
            ledger.deltas_between(12345, registry.accumulator)

    @respx.mock
    def test_broken_chain_from_server(self, registry):
        """A server answer that does not chain is rejected."""
        d1 = registry.issue([1])
        registry.issue([2])
        d3 = registry.issue([3])
        algebra = registry.algebra
        respx.get(f"{LEDGER_URL}/deltas").mock(
            return_value=Response(
                200, json={"deltas": [d1.to_dict(algebra), d3.to_dict(algebra)]}
            )
        )
        ledger = HttpRegistryLedger(LEDGER_URL, algebra, retry=NO_WAIT)

        with pytest.raises(InconsistentDeltaError):
            ledger.deltas_between(d1.from_value, d3.to_value)

    @respx.mock
    def test_server_down(self, registry):
        """Persistent server errors surface as LedgerFetchError."""
        route = respx.get(f"{LEDGER_URL}/head").mock(return_value=Response(500))
        ledger = HttpRegistryLedger(LEDGER_URL, registry.algebra, retry=NO_WAIT)

        with pytest.raises(LedgerFetchError):
            ledger.head
        assert route.call_count == 3

    @respx.mock
    def test_invalid_json(self, registry):
        """Non-JSON answers are fetch errors."""
        respx.get(f"{LEDGER_URL}/head").mock(return_value=Response(200, text="oops"))
        ledger = HttpRegistryLedger(LEDGER_URL, registry.algebra, retry=NO_WAIT)

        with pytest.raises(LedgerFetchError):
            ledger.head


class TestRemoteRefresh:
    """A holder refreshing entirely over HTTP."""

    @respx.mock
    def test_refresh_over_http(self, registry):
        """Witnesses refresh against remote tails and ledger."""
        binding = issue_credential(registry)
        for _ in range(4):
            issue_credential(registry)
        registry.revoke([3])
        algebra = registry.algebra
        respx.get(url__startswith=f"{TAILS_URL}/").mock(
            side_effect=tails_handler(registry)
        )
        respx.get(f"{LEDGER_URL}/deltas").mock(side_effect=deltas_handler(registry))
        respx.get(f"{LEDGER_URL}/head").mock(
            return_value=Response(
                200, json={"accumulator": algebra.encode(registry.accumulator)}
            )
        )
        tails = HttpTailsSource(TAILS_URL, algebra, retry=NO_WAIT)
        recomputer = WitnessRecomputer(algebra, tails)
        ledger = HttpRegistryLedger(LEDGER_URL, algebra, retry=NO_WAIT)

        refreshed = binding.refresh(recomputer, ledger)

        assert refreshed.registry_ref == registry.accumulator
        assert verify_witness(
            algebra, registry.tails, refreshed.witness, registry.accumulator
        )
