"""
Object index and host matching.

Python side:
- Pulls every grouping's address objects concurrently (one worker per grouping)
- Matches every stale host against every grouping's objects concurrently
- Funnels matches through a single-consumer sink, then de-duplicates by name

Panorama side:
- Read-only: only fetch_address_objects() is called
"""

import ipaddress
import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from pano_decom.errors import FetchError, GroupingFetchError
from pano_decom.models import AddressObject, MatchedObject
from pano_decom.store import PolicyStore

logger = logging.getLogger(__name__)

_CLOSED = object()


@dataclass(frozen=True)
class MatchResolution:
    matched: List[MatchedObject]
    index: Dict[str, List[AddressObject]]
    errors: List[GroupingFetchError] = field(default_factory=list)


def build_object_index(store: PolicyStore, grouping: str) -> List[AddressObject]:
    objs = store.fetch_address_objects(grouping)
    logger.info("[%s] Found %d address objects.", grouping, len(objs))
    return objs


def _canonical(text: str) -> str:
    """ipaddress's textual form of ``text``, or ``text`` unchanged if it is not an address."""
    try:
        return str(ipaddress.ip_address(text.strip()))
    except ValueError:
        return text


def find_host(host: str, objs: Iterable[AddressObject]) -> List[AddressObject]:
    """
    Return the objects that represent ``host``.

    An object matches when its value is the host, or when its value carries a
    prefix length and the address part before the "/" is the host. Both sides
    are compared in ipaddress's form, so "2001:DB8::10" and "2001:db8::10"
    are the same host.
    """
    wanted = _canonical(host)
    found: List[AddressObject] = []
    for obj in objs:
        if _canonical(obj.value) == wanted:
            found.append(obj)
        elif "/" in obj.value and _canonical(obj.value.split("/", 1)[0]) == wanted:
            found.append(obj)
    return found


class MatchSink:
    """
    Many producers, one consumer.

    The consumer iterates until close() is called; close() must only be called
    once every producer has finished.
    """

    def __init__(self):
        self._queue: "queue.Queue[object]" = queue.Queue()

    def put(self, matches: List[MatchedObject]) -> None:
        self._queue.put(matches)

    def close(self) -> None:
        self._queue.put(_CLOSED)

    def drain(self) -> Iterator[List[MatchedObject]]:
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            yield item  # type: ignore[misc]


def _index_phase(
    store: PolicyStore, groupings: Sequence[str], workers: int
) -> Tuple[Dict[str, List[AddressObject]], List[GroupingFetchError]]:
    index: Dict[str, List[AddressObject]] = {}
    errors: List[GroupingFetchError] = []

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="index") as pool:
        futures = {g: pool.submit(build_object_index, store, g) for g in groupings}
        wait(futures.values())

    for g, f in futures.items():
        try:
            index[g] = f.result()
        except FetchError as e:
            err = GroupingFetchError(g, e)
            logger.error("%s (grouping contributes no objects)", err)
            errors.append(err)
            index[g] = []
    return index, errors


def _match_phase(
    stale_hosts: Sequence[str], index: Dict[str, List[AddressObject]], workers: int
) -> List[MatchedObject]:
    sink = MatchSink()

    def produce(host: str, grouping: str) -> None:
        found = find_host(host, index[grouping])
        if found:
            sink.put([MatchedObject(o.name, o.value, host, grouping) for o in found])

    collected: List[MatchedObject] = []
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="match") as pool:
        producers: List[Future] = [
            pool.submit(produce, h, g) for h in stale_hosts for g in index
        ]

        def close_when_done() -> None:
            wait(producers)
            sink.close()

        closer = threading.Thread(target=close_when_done, name="match-closer", daemon=True)
        closer.start()
        for batch in sink.drain():
            logger.info("Found object(s) of unresponsive host: %s", [(m.grouping, m.name, m.value) for m in batch])
            collected.extend(batch)
        closer.join()

    for f in producers:
        f.result()
    return collected


def dedupe_by_name(matches: Iterable[MatchedObject], groupings: Sequence[str]) -> List[MatchedObject]:
    """Keep one MatchedObject per name, preferring the earliest grouping, then host."""
    position = {g: i for i, g in enumerate(groupings)}
    best: Dict[str, MatchedObject] = {}
    for m in matches:
        key = (position.get(m.grouping, len(position)), m.host)
        current = best.get(m.name)
        if current is None or key < (position.get(current.grouping, len(position)), current.host):
            best[m.name] = m
    return [best[n] for n in sorted(best)]


def resolve_matched_objects(
    store: PolicyStore,
    stale_hosts: Iterable[str],
    groupings: Sequence[str],
    max_workers: Optional[int] = None,
) -> MatchResolution:
    """
    Build every grouping's object index, then match stale hosts against it.

    A grouping whose objects cannot be fetched contributes an empty index and
    is reported in ``errors``; the other groupings still resolve.
    """
    hosts = sorted(set(stale_hosts))
    if not groupings:
        return MatchResolution(matched=[], index={})

    index, errors = _index_phase(store, groupings, max_workers or len(groupings))

    if not hosts:
        return MatchResolution(matched=[], index=index, errors=errors)

    pairs = len(hosts) * len(index)
    logger.info("Matching %d stale host(s) against %d grouping(s)...", len(hosts), len(index))
    raw = _match_phase(hosts, index, max_workers or pairs)

    matched = dedupe_by_name(raw, groupings)
    logger.info("Matched %d unique address object(s) for removal.", len(matched))
    return MatchResolution(matched=matched, index=index, errors=errors)
