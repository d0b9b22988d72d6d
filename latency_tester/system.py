"""
Platform detection utilities.

Derives the process-wide concurrency and timeout limits once at startup
and reports the operating system's configured DNS servers.
"""

import logging
import os
import platform
import re
import subprocess

from .models import PlatformLimits

logger = logging.getLogger(__name__)

_IPV4_PATTERN = re.compile(r"\d+\.\d+\.\d+\.\d+")


def get_platform() -> str:
    """Get the current platform name."""
    system = platform.system().lower()
    if system == "darwin":
        return "macos"
    return system  # "windows" or "linux"


def detect_cpu_cores() -> int:
    return os.cpu_count() or 1


def detect_platform_limits(
    min_timeout: float = 1.0,
    max_timeout: float = 30.0,
    cpu_cores: int | None = None,
) -> PlatformLimits:
    """
    Compute concurrency limits from the available CPU cores.

    Args:
        min_timeout: Lower bound for per-probe timeouts (seconds)
        max_timeout: Upper bound for per-probe timeouts (seconds)
        cpu_cores: Override for the detected core count

    Returns:
        PlatformLimits with a starting concurrency of twice the cores
        (4-50) and a ceiling of four times the cores (10-100)
    """
    cores = cpu_cores if cpu_cores is not None else detect_cpu_cores()
    initial = min(50, max(4, cores * 2))
    ceiling = min(100, max(10, cores * 4))

    limits = PlatformLimits(
        cpu_cores=cores,
        initial_concurrency=initial,
        max_concurrency=ceiling,
        min_timeout=min_timeout,
        max_timeout=max_timeout,
    )
    logger.debug("Detected platform limits: %s", limits)
    return limits


def get_system_dns_servers() -> list[str]:
    """
    Get the currently configured system DNS servers.

    Returns:
        List of DNS server IPs, empty when they cannot be determined
    """
    system = get_platform()
    servers: list[str] = []

    if system == "windows":
        try:
            result = subprocess.run(
                ["netsh", "interface", "ip", "show", "dns"],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug("netsh failed: %s", e)
            return []
        for line in result.stdout.split("\n"):
            servers.extend(_IPV4_PATTERN.findall(line))

    elif system in ("linux", "macos"):
        try:
            with open("/etc/resolv.conf", "r") as f:
                for line in f:
                    if line.strip().startswith("nameserver"):
                        parts = line.split()
                        if len(parts) >= 2:
                            servers.append(parts[1])
        except OSError as e:
            logger.debug("Could not read /etc/resolv.conf: %s", e)

    # Remove duplicates, keep order
    return list(dict.fromkeys(servers))
