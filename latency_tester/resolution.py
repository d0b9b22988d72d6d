"""
Host name resolution under a DNS strategy.

Provides one resolver front-end for the three strategies:
- System (operating-system resolver via getaddrinfo)
- Custom servers (classic DNS to explicit resolver addresses)
- DoH (DNS wire format POSTed over HTTPS)
"""

import asyncio
import ipaddress
import socket
from typing import Optional

import dns.asyncresolver
import dns.exception
import dns.message
import dns.rcode
import dns.rdatatype
import dns.resolver
import httpx

from .errors import ResolutionError
from .models import DnsStrategy, StrategyKind


class DnsResolver:
    """
    Resolves host names to IP addresses using a ``DnsStrategy``.

    IPv4 answers are preferred; AAAA is only queried when no A record
    exists.
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the resolver.

        Args:
            http_client: Client used for DoH queries (created lazily when
                not supplied)
        """
        self._client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the DoH HTTP/2 client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                http2=True,
                timeout=httpx.Timeout(10.0, connect=5.0),
            )
        return self._client

    async def resolve(self, host: str, strategy: DnsStrategy, timeout: float = 5.0) -> list[str]:
        """
        Resolve ``host`` under ``strategy``.

        Args:
            host: Host name (IP literals are returned unchanged)
            strategy: DNS strategy to use
            timeout: Resolution timeout in seconds

        Returns:
            Non-empty list of IP address strings

        Raises:
            ResolutionError: When the strategy yields no address
        """
        try:
            return [str(ipaddress.ip_address(host))]
        except ValueError:
            pass

        if strategy.kind == StrategyKind.CUSTOM:
            addresses = await self._resolve_custom(host, strategy.servers, timeout)
        elif strategy.kind == StrategyKind.DOH:
            addresses = await self._resolve_doh(host, strategy.doh_url, timeout)
        else:
            addresses = await self._resolve_system(host, timeout)

        if not addresses:
            raise ResolutionError(host, f"no addresses returned by {strategy.label}")
        return addresses

    async def _resolve_system(self, host: str, timeout: float) -> list[str]:
        """Resolve through the operating-system resolver."""
        loop = asyncio.get_running_loop()
        try:
            infos = await asyncio.wait_for(
                loop.getaddrinfo(host, None, type=socket.SOCK_STREAM),
                timeout=timeout,
            )
        except socket.gaierror as e:
            raise ResolutionError(host, str(e)) from e

        # IPv4 first, original order otherwise
        infos = sorted(infos, key=lambda info: info[0] != socket.AF_INET)
        return list(dict.fromkeys(info[4][0] for info in infos))

    async def _resolve_custom(self, host: str, servers: tuple[str, ...], timeout: float) -> list[str]:
        """Resolve by querying explicit resolver addresses in order."""
        resolver = dns.asyncresolver.Resolver(configure=False)
        resolver.nameservers = list(servers)
        resolver.lifetime = timeout
        resolver.timeout = timeout

        last_error: Optional[Exception] = None
        for rdtype in ("A", "AAAA"):
            try:
                answer = await resolver.resolve(host, rdtype)
            except (dns.resolver.NoAnswer, dns.resolver.NXDOMAIN) as e:
                last_error = e
                continue
            except dns.exception.Timeout as e:
                raise asyncio.TimeoutError(f"DNS query to {', '.join(servers)} timed out") from e
            except dns.exception.DNSException as e:
                raise ResolutionError(host, str(e)) from e
            return [rdata.address for rdata in answer]

        raise ResolutionError(host, str(last_error))

    async def _resolve_doh(self, host: str, url: str, timeout: float) -> list[str]:
        """Resolve with DNS-over-HTTPS (RFC 8484 POST)."""
        client = await self._get_client()

        for rdtype in (dns.rdatatype.A, dns.rdatatype.AAAA):
            message = dns.message.make_query(host, rdtype)
            message.id = 0  # recommended for HTTP caching
            try:
                response = await client.post(
                    url,
                    content=message.to_wire(),
                    headers={
                        "Content-Type": "application/dns-message",
                        "Accept": "application/dns-message",
                    },
                    timeout=timeout,
                )
                response.raise_for_status()
                reply = dns.message.from_wire(response.content)
            except httpx.TimeoutException as e:
                raise asyncio.TimeoutError(f"DoH query to {url} timed out") from e
            except (httpx.HTTPError, dns.exception.DNSException) as e:
                raise ResolutionError(host, f"DoH query to {url} failed: {e}") from e

            if reply.rcode() != dns.rcode.NOERROR:
                raise ResolutionError(host, f"DoH server answered {dns.rcode.to_text(reply.rcode())}")

            addresses = [
                rdata.address
                for rrset in reply.answer
                if rrset.rdtype == rdtype
                for rdata in rrset
            ]
            if addresses:
                return addresses

        return []

    async def close(self):
        """Close the DoH client if this resolver created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
