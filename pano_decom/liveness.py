"""
Liveness probing.

Python side:
- Validates each host as an IP address before anything goes on the wire
- Probes hosts on a bounded worker pool, one task per host, and waits once for all of them
- Builds the fresh/stale partition in the calling thread only

Network side:
- Sends ICMP (or ICMPv6) echo requests with scapy; needs raw-socket privileges
"""

import errno
import ipaddress
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Iterable, Optional, Set

# pylint: disable=no-name-in-module
from scapy.all import ICMP, IP, ICMPv6EchoRequest, IPv6, sr  # type: ignore[attr-defined]
# pylint: enable=no-name-in-module

from pano_decom.errors import ProbeConfigError
from pano_decom.models import HostPartition, LivenessResult

logger = logging.getLogger(__name__)

PROBE_COUNT = 4
PROBE_TIMEOUT = 5.0
MAX_PROBE_WORKERS = 64

# Local resource exhaustion: the probe was never sent.
_RESOURCE_ERRNOS = {errno.EMFILE, errno.ENFILE, errno.ENOBUFS}

Probe = Callable[[str], bool]


def probe(host: str, count: int = PROBE_COUNT, timeout: float = PROBE_TIMEOUT) -> bool:
    """
    Return True if ``host`` answered at least one of ``count`` echo requests.

    A host that does not answer, or a send that fails at the network level,
    is reported as unreachable. Malformed input, a count or timeout that
    sends nothing, a missing raw-socket privilege or exhausted local
    resources raise ProbeConfigError since the probe was never built.
    """
    try:
        address = ipaddress.ip_address(host)
    except ValueError as e:
        raise ProbeConfigError(f"Cannot probe '{host}': not a valid IP address") from e
    if count < 1:
        raise ProbeConfigError(f"Cannot probe '{host}': count must be at least 1, got {count}")
    if timeout <= 0:
        raise ProbeConfigError(f"Cannot probe '{host}': timeout must be positive, got {timeout}")

    if address.version == 4:
        packets = IP(dst=str(address)) / ICMP(seq=(1, count))
    else:
        packets = IPv6(dst=str(address)) / ICMPv6EchoRequest(seq=(1, count))

    logger.debug("Sending %d echo request(s) to %s, timeout %ss", count, host, timeout)
    try:
        answered, _ = sr(packets, timeout=timeout, verbose=False)
    except PermissionError as e:
        raise ProbeConfigError(f"Raw socket access denied while probing '{host}' (run as root): {e}") from e
    except OSError as e:
        if e.errno in _RESOURCE_ERRNOS:
            raise ProbeConfigError(f"Out of local resources while probing '{host}': {e}") from e
        logger.warning("Probe of %s failed at the network level, treating as unreachable: %s", host, e)
        return False

    return len(answered) > 0


def _probe_one(host: str, probe_fn: Probe) -> LivenessResult:
    try:
        reachable = probe_fn(host)
    except ProbeConfigError:
        raise
    except Exception as e:
        logger.warning("Probe of %s raised %s, classifying as stale: %s", host, type(e).__name__, e)
        reachable = False

    if reachable:
        logger.info("%s - is responsive", host)
    else:
        logger.info("%s - is unresponsive", host)
    return LivenessResult(host=host, reachable=reachable)


def resolve_stale_hosts(
    hosts: Iterable[str],
    probe_fn: Probe = probe,
    max_workers: Optional[int] = None,
) -> HostPartition:
    """
    Probe every host concurrently and split them into fresh and stale.

    Each worker returns its LivenessResult through its own future; only this
    function touches the result sets. A probe that errors out counts as stale.
    """
    unique = sorted(set(hosts))
    if not unique:
        return HostPartition(fresh=frozenset(), stale=frozenset())

    logger.info("Pinging %d host(s) to see if they are online...", len(unique))
    workers = max_workers or min(len(unique), MAX_PROBE_WORKERS)

    fresh: Set[str] = set()
    stale: Set[str] = set()
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="probe") as pool:
        futures = [pool.submit(_probe_one, h, probe_fn) for h in unique]
        wait(futures)

    for f in futures:
        result = f.result()  # re-raises ProbeConfigError
        if result.reachable:
            fresh.add(result.host)
        else:
            stale.add(result.host)

    logger.info("Hosts that are ready for removal: %s", sorted(stale))
    return HostPartition(fresh=frozenset(fresh), stale=frozenset(stale))
