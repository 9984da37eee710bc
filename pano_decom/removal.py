"""
Cascading removal of matched address objects.

Python side:
- Runs the four stages in a fixed order, every grouping finishing a stage
  before any grouping starts the next one
- Within a stage, each grouping gets its own worker and its own outcome list
- Records one RemovalOutcome per (grouping, object, stage) and keeps going
  past per-item failures

Panorama side (candidate config only, NO commit):
- Strips names from address-group static members
- Strips names from Security rule source/destination (pre + post)
- Strips names from NAT rule source/destination/translated addresses (pre + post)
- Deletes the address object itself
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Sequence, Set

from pano_decom.errors import FetchError, RemoteEditError
from pano_decom.models import (
    ALL_GROUPINGS,
    RULEBASES,
    SHARED,
    STAGE_ORDER,
    MatchedObject,
    NatRuleEntry,
    RemovalOutcome,
    RemovalStage,
)
from pano_decom.slices import remove_from_slice
from pano_decom.store import PolicyStore

logger = logging.getLogger(__name__)

# Required by the NAT rule edit validation; only applied to unset fields.
NAT_DEFAULTS = {
    "nat_type": "ipv4",
    "to_interface": "any",
    "service": "any",
    "source_translation_type": "none",
    "destination_translation_type": "none",
}


def apply_nat_defaults(entry: NatRuleEntry) -> NatRuleEntry:
    for attr, default in NAT_DEFAULTS.items():
        if not getattr(entry, attr):
            setattr(entry, attr, default)
    return entry


def _strip(members: Sequence[str], name: str) -> Optional[List[str]]:
    """New member list without ``name``, or None when ``name`` is not referenced."""
    if name not in members:
        return None
    return remove_from_slice(members, name)


class CascadingRemover:
    """
    Removes matched objects from a snapshot of groupings.

    ``groupings`` is the list established at pipeline start; it is never
    re-read from the store.
    """

    def __init__(
        self,
        store: PolicyStore,
        groupings: Sequence[str],
        max_workers: Optional[int] = None,
        catch_all: str = SHARED,
    ):
        self.store = store
        self.groupings = list(groupings)
        self.max_workers = max_workers
        self.catch_all = catch_all

    def stage_groupings(self, scope: str, stage: RemovalStage) -> List[str]:
        if scope != ALL_GROUPINGS:
            if scope not in self.groupings:
                raise ValueError(f"Unknown grouping '{scope}'")
            return [scope]
        if stage is RemovalStage.ADDRESS_GROUP_REF:
            return [g for g in self.groupings if g != self.catch_all]
        return list(self.groupings)

    def remove(self, scope: str, matched: Sequence[MatchedObject]) -> List[RemovalOutcome]:
        names = sorted({m.name for m in matched})
        if not names:
            logger.info("Nothing to remove.")
            return []

        handlers: Dict[RemovalStage, Callable[[str, List[str]], List[RemovalOutcome]]] = {
            RemovalStage.ADDRESS_GROUP_REF: self._strip_address_groups,
            RemovalStage.SECURITY_RULE: self._strip_security_rules,
            RemovalStage.NAT_RULE: self._strip_nat_rules,
            RemovalStage.OBJECT_DELETION: self._delete_objects,
        }

        aborted: Set[str] = set()
        outcomes: List[RemovalOutcome] = []

        for stage in STAGE_ORDER:
            targets = self.stage_groupings(scope, stage)
            logger.info("**Stage %s: %d object(s) across %d grouping(s)", stage.value, len(names), len(targets))

            for g in targets:
                if g in aborted:
                    outcomes.extend(
                        RemovalOutcome(g, n, stage, False, "skipped: earlier enumeration failed") for n in names
                    )

            live = [g for g in targets if g not in aborted]
            if not live:
                continue

            workers = self.max_workers or len(live)
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"remove-{stage.value}") as pool:
                futures = {g: pool.submit(self._run_stage, handlers[stage], stage, g, names) for g in live}
                wait(futures.values())

            for g in live:
                stage_outcomes, ok = futures[g].result()
                outcomes.extend(stage_outcomes)
                if not ok:
                    aborted.add(g)

        return outcomes

    def _run_stage(self, handler, stage: RemovalStage, grouping: str, names: List[str]):
        logger.info("**Processing grouping '%s' (%s)", grouping, stage.value)
        try:
            return handler(grouping, names), True
        except FetchError as e:
            logger.error("[%s] %s enumeration failed, skipping remaining stages: %s", grouping, stage.value, e)
            return [RemovalOutcome(grouping, n, stage, False, f"enumeration failed: {e}") for n in names], False
        except Exception as e:
            # Other groupings keep their outcomes whatever this handler raised.
            logger.exception("[%s] %s failed unexpectedly, skipping remaining stages: %s", grouping, stage.value, e)
            detail = f"stage failed: {type(e).__name__}: {e}"
            return [RemovalOutcome(grouping, n, stage, False, detail) for n in names], False

    # ──────────────────────────────────────────────────────────────
    # STAGES
    # ──────────────────────────────────────────────────────────────
    def _strip_address_groups(self, grouping: str, names: List[str]) -> List[RemovalOutcome]:
        stage = RemovalStage.ADDRESS_GROUP_REF
        groups = self.store.fetch_address_groups(grouping)
        outcomes = []
        for name in names:
            stripped, errors = 0, []
            for entry in groups:
                new_members = _strip(entry.static_members, name)
                if new_members is None:
                    continue
                old_members = entry.static_members
                entry.static_members = new_members
                try:
                    logger.info("[%s] Removing '%s' from address group '%s'", grouping, name, entry.name)
                    self.store.edit_address_group(grouping, entry)
                    stripped += 1
                except RemoteEditError as e:
                    entry.static_members = old_members
                    errors.append(f"address-group '{entry.name}': {e}")
                    logger.warning("[%s] Could not edit address group '%s' for '%s': %s", grouping, entry.name, name, e)
            outcomes.append(self._outcome(grouping, name, stage, stripped, errors))
        return outcomes

    def _strip_security_rules(self, grouping: str, names: List[str]) -> List[RemovalOutcome]:
        stage = RemovalStage.SECURITY_RULE
        rules = {rb: self.store.fetch_security_rules(grouping, rb) for rb in RULEBASES}
        outcomes = []
        for name in names:
            stripped, errors = 0, []
            for rulebase, entries in rules.items():
                for rule in entries:
                    new_src = _strip(rule.source, name)
                    new_dst = _strip(rule.destination, name)
                    if new_src is None and new_dst is None:
                        continue
                    before = (rule.source, rule.destination)
                    if new_src is not None:
                        rule.source = new_src
                    if new_dst is not None:
                        rule.destination = new_dst
                    try:
                        logger.info("[%s] Removing '%s' from %s security rule '%s'", grouping, name, rulebase, rule.name)
                        self.store.edit_security_rule(grouping, rulebase, rule)
                        stripped += 1
                    except RemoteEditError as e:
                        rule.source, rule.destination = before
                        errors.append(f"{rulebase} security rule '{rule.name}': {e}")
                        logger.warning("[%s] Security rule edit error on '%s' for '%s': %s", grouping, rule.name, name, e)
            outcomes.append(self._outcome(grouping, name, stage, stripped, errors))
        return outcomes

    def _strip_nat_rules(self, grouping: str, names: List[str]) -> List[RemovalOutcome]:
        stage = RemovalStage.NAT_RULE
        rules = {rb: self.store.fetch_nat_rules(grouping, rb) for rb in RULEBASES}
        fields = ("source", "destination", "translated_addresses", "fallback_translated_addresses")
        outcomes = []
        for name in names:
            stripped, errors = 0, []
            for rulebase, entries in rules.items():
                for rule in entries:
                    updates = {f: _strip(getattr(rule, f), name) for f in fields}
                    if all(v is None for v in updates.values()):
                        continue
                    before = {f: getattr(rule, f) for f in fields}
                    for f, v in updates.items():
                        if v is not None:
                            setattr(rule, f, v)
                    apply_nat_defaults(rule)
                    try:
                        logger.info("[%s] Removing '%s' from %s NAT rule '%s'", grouping, name, rulebase, rule.name)
                        self.store.edit_nat_rule(grouping, rulebase, rule)
                        stripped += 1
                    except RemoteEditError as e:
                        for f, v in before.items():
                            setattr(rule, f, v)
                        errors.append(f"{rulebase} NAT rule '{rule.name}': {e}")
                        logger.warning("[%s] NAT rule edit error on '%s' for '%s': %s", grouping, rule.name, name, e)
            outcomes.append(self._outcome(grouping, name, stage, stripped, errors))
        return outcomes

    def _delete_objects(self, grouping: str, names: List[str]) -> List[RemovalOutcome]:
        stage = RemovalStage.OBJECT_DELETION
        present = set(self.store.list_address_object_names(grouping))
        outcomes = []
        for name in names:
            if name not in present:
                outcomes.append(RemovalOutcome(grouping, name, stage, True, "not present"))
                continue
            try:
                logger.info("[%s] DELETE address: %s", grouping, name)
                self.store.delete_address_object(grouping, name)
                outcomes.append(RemovalOutcome(grouping, name, stage, True, "deleted"))
            except RemoteEditError as e:
                logger.warning("[%s] Failed to delete address '%s': %s", grouping, name, e)
                outcomes.append(RemovalOutcome(grouping, name, stage, False, str(e)))
        return outcomes

    @staticmethod
    def _outcome(grouping: str, name: str, stage: RemovalStage, stripped: int, errors: List[str]) -> RemovalOutcome:
        if errors:
            return RemovalOutcome(grouping, name, stage, False, " | ".join(errors))
        return RemovalOutcome(grouping, name, stage, True, f"{stripped} reference(s) stripped")
