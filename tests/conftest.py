"""Shared fixtures and the in-memory policy store test double."""

import copy
import threading
from typing import Dict, List, Optional, Set, Tuple

import pytest

from pano_decom.errors import EnumerationError, FetchError, RemoteEditError
from pano_decom.models import (
    RULEBASES,
    SHARED,
    AddressGroupEntry,
    AddressObject,
    NatRuleEntry,
    SecurityRuleEntry,
)
from pano_decom.store import PolicyStore


class FakePolicyStore(PolicyStore):
    """
    In-memory store that records every call in order.

    ``fail_fetch`` holds (method, grouping) pairs whose fetch raises FetchError;
    ``fail_edit`` holds (grouping, entry name) pairs whose edit/delete raises.
    """

    def __init__(self, device_groups: Optional[List[str]] = None):
        self.groupings = list(device_groups or []) + [SHARED]
        self.objects: Dict[str, Dict[str, str]] = {g: {} for g in self.groupings}
        self.groups: Dict[str, Dict[str, List[str]]] = {g: {} for g in self.groupings}
        self.security: Dict[Tuple[str, str], List[SecurityRuleEntry]] = {}
        self.nat: Dict[Tuple[str, str], List[NatRuleEntry]] = {}
        for g in self.groupings:
            for rb in RULEBASES:
                self.security[(g, rb)] = []
                self.nat[(g, rb)] = []
        self.fail_fetch: Set[Tuple[str, str]] = set()
        self.fail_edit: Set[Tuple[str, str]] = set()
        self.fail_list = False
        self.calls: List[Tuple] = []
        self._lock = threading.Lock()

    def _record(self, *call) -> None:
        with self._lock:
            self.calls.append(call)

    def _check_fetch(self, method: str, grouping: str) -> None:
        if (method, grouping) in self.fail_fetch:
            raise FetchError(f"{method} failed for {grouping}")

    def _check_edit(self, grouping: str, name: str) -> None:
        if (grouping, name) in self.fail_edit:
            raise RemoteEditError(f"edit of {name} in {grouping} rejected")

    def list_groupings(self):
        self._record("list_groupings")
        if self.fail_list:
            raise EnumerationError("device groups unavailable")
        return list(self.groupings)

    def fetch_address_objects(self, grouping):
        self._record("fetch_address_objects", grouping)
        self._check_fetch("fetch_address_objects", grouping)
        return [AddressObject(n, v) for n, v in self.objects[grouping].items()]

    def fetch_address_groups(self, grouping):
        self._record("fetch_address_groups", grouping)
        self._check_fetch("fetch_address_groups", grouping)
        return [AddressGroupEntry(n, list(m)) for n, m in self.groups[grouping].items()]

    def edit_address_group(self, grouping, entry):
        self._record("edit_address_group", grouping, entry.name, tuple(entry.static_members))
        self._check_edit(grouping, entry.name)
        self.groups[grouping][entry.name] = list(entry.static_members)

    def fetch_security_rules(self, grouping, rulebase):
        self._record("fetch_security_rules", grouping, rulebase)
        self._check_fetch("fetch_security_rules", grouping)
        return copy.deepcopy(self.security[(grouping, rulebase)])

    def edit_security_rule(self, grouping, rulebase, entry):
        self._record("edit_security_rule", grouping, rulebase, entry.name)
        self._check_edit(grouping, entry.name)
        rules = self.security[(grouping, rulebase)]
        rules[:] = [copy.deepcopy(entry) if r.name == entry.name else r for r in rules]

    def fetch_nat_rules(self, grouping, rulebase):
        self._record("fetch_nat_rules", grouping, rulebase)
        self._check_fetch("fetch_nat_rules", grouping)
        return copy.deepcopy(self.nat[(grouping, rulebase)])

    def edit_nat_rule(self, grouping, rulebase, entry):
        self._record("edit_nat_rule", grouping, rulebase, entry.name)
        self._check_edit(grouping, entry.name)
        rules = self.nat[(grouping, rulebase)]
        rules[:] = [copy.deepcopy(entry) if r.name == entry.name else r for r in rules]

    def list_address_object_names(self, grouping):
        self._record("list_address_object_names", grouping)
        self._check_fetch("list_address_object_names", grouping)
        return list(self.objects[grouping])

    def delete_address_object(self, grouping, name):
        self._record("delete_address_object", grouping, name)
        self._check_edit(grouping, name)
        del self.objects[grouping][name]

    def calls_named(self, method: str) -> List[Tuple]:
        return [c for c in self.calls if c[0] == method]


@pytest.fixture
def store():
    return FakePolicyStore(["branch-1", "branch-2"])


@pytest.fixture
def make_store():
    return FakePolicyStore
