"""
The decommission pipeline: probe → index/match → cascading removal.

plan() does everything read-only and fixes the run's snapshot (partition,
grouping list, matched objects); execute() removes against that snapshot.
decommission() runs both back to back.
"""

import logging
from typing import Iterable, Optional, Sequence

from pano_decom.liveness import Probe, probe, resolve_stale_hosts
from pano_decom.matching import resolve_matched_objects
from pano_decom.models import DecomPlan, DecomResult
from pano_decom.removal import CascadingRemover
from pano_decom.store import PolicyStore

logger = logging.getLogger(__name__)


def plan(
    store: PolicyStore,
    hosts: Iterable[str],
    probe_fn: Probe = probe,
    max_workers: Optional[int] = None,
    groupings: Optional[Sequence[str]] = None,
) -> DecomPlan:
    """
    Probe the hosts and match the stale ones against every grouping.

    ``groupings`` is the snapshot to work against; when omitted it is listed
    from the store once, here.
    """
    partition = resolve_stale_hosts(hosts, probe_fn=probe_fn, max_workers=max_workers)
    if not partition.stale:
        logger.info("Every host answered; nothing to decommission.")
        return DecomPlan(partition=partition, groupings=list(groupings or []), matched=[])

    groupings = list(groupings) if groupings is not None else store.list_groupings()
    resolution = resolve_matched_objects(store, partition.stale, groupings, max_workers=max_workers)
    return DecomPlan(
        partition=partition,
        groupings=groupings,
        matched=resolution.matched,
        index_errors=list(resolution.errors),
    )


def execute(
    store: PolicyStore,
    decom_plan: DecomPlan,
    scope: str,
    max_workers: Optional[int] = None,
) -> DecomResult:
    remover = CascadingRemover(store, decom_plan.groupings, max_workers=max_workers)
    outcomes = remover.remove(scope, decom_plan.matched)
    return DecomResult(plan=decom_plan, scope=scope, outcomes=outcomes)


def decommission(
    store: PolicyStore,
    hosts: Iterable[str],
    scope: str,
    probe_fn: Probe = probe,
    max_workers: Optional[int] = None,
    groupings: Optional[Sequence[str]] = None,
) -> DecomResult:
    decom_plan = plan(store, hosts, probe_fn=probe_fn, max_workers=max_workers, groupings=groupings)
    return execute(store, decom_plan, scope, max_workers=max_workers)
