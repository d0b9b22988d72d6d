"""
Timed HTTP(S) probe client.

Issues one request per probe with DNS resolution done under a supplied
strategy, measures per-phase timings from the HTTP transport's trace
events and classifies every failure mode into a ``FailureKind``.
"""

import asyncio
import logging
import ssl
import time
from typing import Optional, Protocol

import httpx

from .errors import ResolutionError
from .models import (
    DnsStrategy,
    FailureKind,
    PhaseTimings,
    ProbeOutcome,
)
from .resolution import DnsResolver

logger = logging.getLogger(__name__)

USER_AGENT = "latency-tester/1.0"


class ProbeClient(Protocol):
    """Anything that can run one timed probe. Implementations never raise."""

    async def probe(self, url: str, strategy: DnsStrategy, timeout: float) -> ProbeOutcome:
        ...


class _PhaseClock:
    """
    Collects httpcore trace events as perf_counter marks.

    httpcore awaits the trace callback on async connections, so it must
    be a coroutine function.
    """

    def __init__(self):
        self.marks: dict[str, float] = {}

    async def __call__(self, event_name: str, info: dict) -> None:
        # "connection.connect_tcp.started" -> "connect_tcp.started"
        _, _, name = event_name.partition(".")
        self.marks.setdefault(name, time.perf_counter())

    def span_ms(self, start: str, end: str) -> Optional[float]:
        if start in self.marks and end in self.marks:
            return max(0.0, (self.marks[end] - self.marks[start]) * 1000)
        return None


def _chain(error: BaseException):
    """Yield an exception and everything it was raised from."""
    seen = set()
    while error is not None and id(error) not in seen:
        seen.add(id(error))
        yield error
        error = error.__cause__ or error.__context__


def classify_error(error: BaseException) -> FailureKind:
    """Map an exception raised while probing to a failure kind."""
    for exc in _chain(error):
        if isinstance(exc, ResolutionError):
            return FailureKind.DNS_RESOLUTION_FAILED
        if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
            return FailureKind.TIMEOUT
        if isinstance(exc, ssl.SSLError):
            return FailureKind.TLS_ERROR
        if isinstance(exc, ConnectionRefusedError):
            return FailureKind.CONNECTION_REFUSED

    message = str(error).lower()
    if "certificate" in message or "ssl" in message or "tls" in message:
        return FailureKind.TLS_ERROR
    if "refused" in message:
        return FailureKind.CONNECTION_REFUSED
    return FailureKind.OTHER


class HttpProbeClient:
    """
    HTTP probe client with DNS override.

    The host is resolved under the requested strategy, then the request is
    sent straight to the resolved address with the original Host header and
    TLS server name, so certificate validation still checks the real host.
    A fresh connection is used per probe so connect and TLS phases are
    always measured.
    """

    def __init__(
        self,
        resolver: Optional[DnsResolver] = None,
        http2: bool = True,
        verify: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the probe client.

        Args:
            resolver: DNS resolver front-end (a default one is created)
            http2: Negotiate HTTP/2 where the server supports it
            verify: Verify TLS certificates
            transport: Custom httpx transport (used by tests)
        """
        self.resolver = resolver or DnsResolver()
        self._owns_resolver = resolver is None
        self.http2 = http2
        self.verify = verify
        self._transport = transport

    async def probe(self, url: str, strategy: DnsStrategy, timeout: float) -> ProbeOutcome:
        """
        Execute a single timed probe.

        Args:
            url: Target URL
            strategy: DNS strategy used to resolve the target host
            timeout: Upper bound for the whole probe in seconds

        Returns:
            ProbeOutcome; failures are classified, never raised
        """
        try:
            return await asyncio.wait_for(self._probe(url, strategy, timeout), timeout=timeout)
        except Exception as e:
            kind = classify_error(e)
            message = str(e) or type(e).__name__
            if kind == FailureKind.TIMEOUT:
                message = f"Probe timed out after {timeout:.2f}s"
            logger.debug("Probe %s via %s failed (%s): %s", url, strategy.label, kind.value, message)
            return ProbeOutcome.failed(kind, error_message=message)

    async def _probe(self, url: str, strategy: DnsStrategy, timeout: float) -> ProbeOutcome:
        target = httpx.URL(url)
        host = target.host

        start = time.perf_counter()
        addresses = await self.resolver.resolve(host, strategy, timeout=timeout)
        resolved = time.perf_counter()
        resolution_ms = (resolved - start) * 1000

        address = addresses[0]
        request_url = target.copy_with(host=address)
        host_header = host if target.port is None else f"{host}:{target.port}"

        clock = _PhaseClock()
        extensions = {"trace": clock}
        if target.scheme == "https":
            extensions["sni_hostname"] = host

        async with httpx.AsyncClient(
            http2=self.http2,
            verify=self.verify,
            timeout=httpx.Timeout(timeout),
            follow_redirects=False,
            transport=self._transport,
        ) as client:
            request = client.build_request(
                "GET",
                request_url,
                headers={"Host": host_header, "User-Agent": USER_AGENT},
                extensions=extensions,
            )
            response = await client.send(request)
            headers_at = time.perf_counter()
            await response.aread()
        end = time.perf_counter()

        connect_ms = clock.span_ms("connect_tcp.started", "connect_tcp.complete") or 0.0
        tls_ms = clock.span_ms("start_tls.started", "start_tls.complete")
        first_byte_ms = clock.span_ms(
            "send_request_headers.started", "receive_response_headers.complete"
        )
        if first_byte_ms is None:
            first_byte_ms = (headers_at - resolved) * 1000

        timings = PhaseTimings(
            total_ms=(end - start) * 1000,
            resolution_ms=resolution_ms,
            connect_ms=connect_ms,
            tls_handshake_ms=tls_ms,
            first_byte_ms=first_byte_ms,
        )

        if response.status_code >= 400:
            return ProbeOutcome.failed(
                FailureKind.UNEXPECTED_STATUS,
                error_message=f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        logger.debug(
            "Probe %s via %s (%s): HTTP %d in %.1fms",
            url, strategy.label, address, response.status_code, timings.total_ms,
        )
        return ProbeOutcome.success(timings, response.status_code)

    async def close(self):
        """Release the resolver's resources."""
        if self._owns_resolver:
            await self.resolver.close()
