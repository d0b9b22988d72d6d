"""
Built-in DNS providers and strategy construction.

Provides pre-configured profiles for popular public resolvers and turns
raw configuration values (URLs, server IPs, DoH endpoints) into validated
``DnsStrategy`` instances and a finished ``RunConfig``.
"""

import ipaddress
from dataclasses import dataclass
from typing import Iterable, Optional

import httpx

from .errors import ConfigurationError
from .models import DnsStrategy, RunConfig


@dataclass(frozen=True)
class Provider:
    """A public DNS provider reachable over classic DNS and/or DoH."""
    name: str
    ipv4: str
    doh_url: Optional[str] = None
    description: Optional[str] = None


PROVIDERS: dict[str, Provider] = {
    "cloudflare": Provider(
        name="Cloudflare",
        ipv4="1.1.1.1",
        doh_url="https://cloudflare-dns.com/dns-query",
        description="Cloudflare's privacy-focused DNS resolver",
    ),
    "google": Provider(
        name="Google",
        ipv4="8.8.8.8",
        doh_url="https://dns.google/dns-query",
        description="Google Public DNS",
    ),
    "quad9": Provider(
        name="Quad9",
        ipv4="9.9.9.9",
        doh_url="https://dns.quad9.net/dns-query",
        description="Quad9 with malware blocking",
    ),
    "opendns": Provider(
        name="OpenDNS",
        ipv4="208.67.222.222",
        doh_url="https://doh.opendns.com/dns-query",
        description="Cisco OpenDNS",
    ),
    "adguard": Provider(
        name="AdGuard",
        ipv4="94.140.14.14",
        doh_url="https://dns.adguard-dns.com/dns-query",
        description="AdGuard DNS with ad blocking",
    ),
    "alidns": Provider(
        name="AliDNS",
        ipv4="223.5.5.5",
        doh_url="https://dns.alidns.com/dns-query",
        description="Alibaba public DNS",
    ),
    "dnspod": Provider(
        name="DNSPod",
        ipv4="119.29.29.29",
        doh_url="https://doh.pub/dns-query",
        description="Tencent DNSPod public DNS",
    ),
}

DEFAULT_TARGET_URLS = ["https://example.com"]
DEFAULT_DNS_SERVERS = ["8.8.8.8", "1.1.1.1"]
DEFAULT_DOH_PROVIDERS = [
    PROVIDERS["cloudflare"].doh_url,
    PROVIDERS["google"].doh_url,
]

MIN_ITERATIONS = 1
MAX_ITERATIONS = 100
MIN_TIMEOUT_SECONDS = 1
MAX_TIMEOUT_SECONDS = 300


def get_provider(name: str) -> Provider:
    """Get a provider by name (case-insensitive)."""
    key = name.lower()
    if key in PROVIDERS:
        return PROVIDERS[key]
    raise ConfigurationError(f"Unknown provider: {name}. Available: {list(PROVIDERS.keys())}")


def split_values(values: Iterable[str]) -> list[str]:
    """Flatten comma-separated entries and drop blanks."""
    items = []
    for value in values:
        items.extend(part.strip() for part in value.split(","))
    return [item for item in items if item]


def validate_url(url: str) -> str:
    """Validate a target URL; only http and https are probed."""
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as e:
        raise ConfigurationError(f"Invalid URL '{url}': {e}") from e

    if parsed.scheme not in ("http", "https"):
        raise ConfigurationError(f"Invalid URL '{url}': scheme must be http or https")
    if not parsed.host:
        raise ConfigurationError(f"Invalid URL '{url}': missing host")
    return url


def parse_dns_servers(values: Iterable[str]) -> list[str]:
    """
    Validate DNS server addresses.

    Provider names from ``PROVIDERS`` are accepted and replaced by their
    IPv4 address.
    """
    servers = []
    for value in split_values(values):
        if value.lower() in PROVIDERS:
            servers.append(PROVIDERS[value.lower()].ipv4)
            continue
        try:
            servers.append(str(ipaddress.ip_address(value)))
        except ValueError as e:
            raise ConfigurationError(f"Invalid DNS server address '{value}'") from e
    return servers


def parse_doh_providers(values: Iterable[str]) -> list[str]:
    """
    Validate DNS-over-HTTPS endpoints.

    Provider names from ``PROVIDERS`` are accepted and replaced by their
    DoH URL.
    """
    urls = []
    for value in split_values(values):
        provider = PROVIDERS.get(value.lower())
        if provider is not None and provider.doh_url:
            urls.append(provider.doh_url)
            continue
        validate_url(value)
        if httpx.URL(value).scheme != "https":
            raise ConfigurationError(f"DoH provider '{value}' must use https")
        urls.append(value)
    return urls


def build_strategies(
    dns_servers: Iterable[str] = (),
    doh_providers: Iterable[str] = (),
    include_system: bool = True,
    group_servers: bool = False,
) -> list[DnsStrategy]:
    """
    Build the list of DNS strategies to test.

    Args:
        dns_servers: Validated DNS server IPs
        doh_providers: Validated DoH endpoint URLs
        include_system: Whether to test the OS resolver
        group_servers: Use all servers as one ordered strategy instead of
            one strategy per server

    Returns:
        Strategies in display order, duplicates removed
    """
    strategies = []
    if include_system:
        strategies.append(DnsStrategy.system())

    servers = list(dns_servers)
    if servers:
        if group_servers:
            strategies.append(DnsStrategy.custom(servers))
        else:
            strategies.extend(DnsStrategy.custom([server]) for server in servers)

    strategies.extend(DnsStrategy.doh(url) for url in doh_providers)

    return list(dict.fromkeys(strategies))


def build_config(
    target_urls: Iterable[str],
    dns_servers: Iterable[str] = (),
    doh_providers: Iterable[str] = (),
    iterations: int = 5,
    timeout: float = 10.0,
    min_timeout: float = 1.0,
    max_timeout: Optional[float] = None,
    include_system: bool = True,
    group_servers: bool = False,
    iteration_delay: float = 0.1,
    abandon_threshold: int = 3,
    enable_color: bool = True,
    verbose: bool = False,
    debug: bool = False,
) -> RunConfig:
    """
    Validate raw settings and assemble the run configuration.

    Raises:
        ConfigurationError: On any invalid value
    """
    urls = [validate_url(url) for url in split_values(target_urls)]
    if not urls:
        raise ConfigurationError("At least one target URL is required")

    strategies = build_strategies(
        parse_dns_servers(dns_servers),
        parse_doh_providers(doh_providers),
        include_system=include_system,
        group_servers=group_servers,
    )
    if not strategies:
        raise ConfigurationError("At least one DNS strategy is required")

    if not MIN_ITERATIONS <= iterations <= MAX_ITERATIONS:
        raise ConfigurationError(
            f"Test count must be between {MIN_ITERATIONS} and {MAX_ITERATIONS}, got {iterations}"
        )
    if not MIN_TIMEOUT_SECONDS <= timeout <= MAX_TIMEOUT_SECONDS:
        raise ConfigurationError(
            f"Timeout must be between {MIN_TIMEOUT_SECONDS} and {MAX_TIMEOUT_SECONDS} seconds, got {timeout}"
        )

    if max_timeout is None:
        max_timeout = min(MAX_TIMEOUT_SECONDS, timeout * 3)
    if not 0 < min_timeout <= timeout <= max_timeout:
        raise ConfigurationError(
            f"Timeouts must satisfy 0 < min ({min_timeout}) <= timeout ({timeout}) <= max ({max_timeout})"
        )
    if iteration_delay < 0:
        raise ConfigurationError("Iteration delay cannot be negative")
    if abandon_threshold < 0:
        raise ConfigurationError("Abandon threshold cannot be negative")

    return RunConfig(
        target_urls=list(dict.fromkeys(urls)),
        strategies=strategies,
        iterations=iterations,
        timeout=float(timeout),
        min_timeout=float(min_timeout),
        max_timeout=float(max_timeout),
        iteration_delay=iteration_delay,
        abandon_threshold=abandon_threshold,
        enable_color=enable_color,
        verbose=verbose,
        debug=debug,
    )


def list_providers() -> list[str]:
    """List all available provider names."""
    return list(PROVIDERS.keys())
