"""
pan-os-python backed policy store.

Python side:
- Generates one API key, then gives every worker thread its own Panorama
  client (the SDK object tree is not safe to share between threads)
- Converts SDK objects to the pipeline's entry dataclasses and back
- Rate limits every write (edit/delete) through WriteRateLimiter
- Maps PanDeviceError to FetchError / RemoteEditError / EnumerationError

Panorama side (candidate config only, NO commit):
- Reads via refreshall() on Shared or a Device Group container
- Edits via apply(), deletes via delete()
"""

import logging
import threading
import time
from typing import Dict, List, Optional, Tuple, Union

from panos.errors import PanDeviceError
from panos.objects import AddressGroup
from panos.objects import AddressObject as PanAddressObject
from panos.panorama import DeviceGroup, Panorama
from panos.policies import NatRule, PostRulebase, PreRulebase, SecurityRule

from pano_decom.errors import EnumerationError, FetchError, RemoteEditError
from pano_decom.models import (
    POST_RULEBASE,
    PRE_RULEBASE,
    SHARED,
    AddressGroupEntry,
    AddressObject,
    NatRuleEntry,
    SecurityRuleEntry,
)
from pano_decom.store import PolicyStore

logger = logging.getLogger(__name__)

Container = Union[Panorama, DeviceGroup]


# ──────────────────────────────────────────────────────────────────
# RATE LIMITER (WRITE CALLS ONLY)
# ──────────────────────────────────────────────────────────────────
class WriteRateLimiter:
    """
    Spaces out writes and pauses after every N of them.

    Shared by all worker threads; the lock serializes the pacing decision.
    """

    def __init__(
        self,
        max_writes_before_pause: int = 25,
        pause_seconds: float = 5.0,
        min_seconds_between_writes: float = 0.2,
        sleep=time.sleep,
    ):
        self.max_writes_before_pause = max_writes_before_pause
        self.pause_seconds = pause_seconds
        self.min_seconds_between_writes = min_seconds_between_writes
        self._sleep = sleep

        self.write_count = 0
        self._last_write_ts: Optional[float] = None
        self._lock = threading.Lock()

    def before_write(self) -> None:
        with self._lock:
            if self.min_seconds_between_writes and self._last_write_ts is not None:
                elapsed = time.monotonic() - self._last_write_ts
                if elapsed < self.min_seconds_between_writes:
                    self._sleep(self.min_seconds_between_writes - elapsed)

            if self.max_writes_before_pause and self.write_count > 0:
                if self.write_count % self.max_writes_before_pause == 0:
                    logger.info(
                        "Rate limit: %d writes reached, pausing for %s seconds...",
                        self.write_count,
                        self.pause_seconds,
                    )
                    self._sleep(self.pause_seconds)
            self._last_write_ts = time.monotonic()

    def after_write(self) -> None:
        with self._lock:
            self.write_count += 1
            self._last_write_ts = time.monotonic()


def _members(value) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


# ──────────────────────────────────────────────────────────────────
# STORE
# ──────────────────────────────────────────────────────────────────
class PanoramaPolicyStore(PolicyStore):
    def __init__(
        self,
        hostname: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        api_key: Optional[str] = None,
        limiter: Optional[WriteRateLimiter] = None,
    ):
        self.hostname = hostname
        self._username = username
        self._password = password
        self._api_key = api_key
        self.limiter = limiter or WriteRateLimiter(0, 0.0, 0.0)
        self._local = threading.local()

    def connect(self) -> None:
        """Authenticate once; every thread reuses the generated API key."""
        if self._api_key:
            return
        logger.info("Connecting to Panorama %s ...", self.hostname)
        pano = Panorama(hostname=self.hostname, api_username=self._username, api_password=self._password)
        self._api_key = pano.api_key
        self._password = None
        logger.info("Authenticated to Panorama %s", self.hostname)

    def _client(self) -> Panorama:
        pano = getattr(self._local, "pano", None)
        if pano is None:
            if not self._api_key:
                self.connect()
            pano = Panorama(hostname=self.hostname, api_key=self._api_key)
            self._local.pano = pano
            self._local.containers = {}
            self._local.rulebases = {}
        return pano

    def _container(self, grouping: str) -> Container:
        pano = self._client()
        if grouping == SHARED:
            return pano
        containers: Dict[str, DeviceGroup] = self._local.containers
        if grouping not in containers:
            dg = DeviceGroup(name=grouping)
            pano.add(dg)
            containers[grouping] = dg
        return containers[grouping]

    def _rulebase(self, grouping: str, rulebase: str) -> Union[PreRulebase, PostRulebase]:
        container = self._container(grouping)
        rulebases: Dict[Tuple[str, str], Union[PreRulebase, PostRulebase]] = self._local.rulebases
        key = (grouping, rulebase)
        if key not in rulebases:
            if rulebase not in (PRE_RULEBASE, POST_RULEBASE):
                raise ValueError(f"Unknown rulebase '{rulebase}'")
            rb = PreRulebase() if rulebase == PRE_RULEBASE else PostRulebase()
            container.add(rb)
            rulebases[key] = rb
        return rulebases[key]

    def _write(self, parent, obj, action: str, label: str) -> None:
        self.limiter.before_write()
        logger.debug("%s (%s, write #%d)", label, action, self.limiter.write_count + 1)
        parent.add(obj)
        try:
            getattr(obj, action)()
        except PanDeviceError as e:
            raise RemoteEditError(f"{label}: {e}") from e
        finally:
            parent.remove(obj)
            self.limiter.after_write()

    @staticmethod
    def _raw(grouping: str, entry):
        # Edits rewrite the whole element, so they need the object as fetched.
        if entry.raw is None:
            raise RemoteEditError(f"[{grouping}] '{entry.name}' was not fetched from this store")
        return entry.raw

    # ── groupings ────────────────────────────────────────────────
    def list_groupings(self) -> List[str]:
        try:
            dgs = DeviceGroup.refreshall(self._client(), add=False) or []
        except PanDeviceError as e:
            raise EnumerationError(f"Could not list device groups: {e}") from e
        names = [dg.name for dg in dgs if dg.name]
        names.append(SHARED)
        logger.info("Device Groups Found: %s", names)
        return names

    # ── address objects ──────────────────────────────────────────
    def _refresh_address_objects(self, grouping: str) -> List[PanAddressObject]:
        try:
            return PanAddressObject.refreshall(self._container(grouping), add=False) or []
        except PanDeviceError as e:
            raise FetchError(f"[{grouping}] address objects: {e}") from e

    def fetch_address_objects(self, grouping: str) -> List[AddressObject]:
        return [AddressObject(o.name, o.value or "") for o in self._refresh_address_objects(grouping)]

    def list_address_object_names(self, grouping: str) -> List[str]:
        return [o.name for o in self._refresh_address_objects(grouping)]

    def delete_address_object(self, grouping: str, name: str) -> None:
        self._write(self._container(grouping), PanAddressObject(name=name), "delete", f"[{grouping}] delete address '{name}'")

    # ── address groups ───────────────────────────────────────────
    def fetch_address_groups(self, grouping: str) -> List[AddressGroupEntry]:
        try:
            groups = AddressGroup.refreshall(self._container(grouping), add=False) or []
        except PanDeviceError as e:
            raise FetchError(f"[{grouping}] address groups: {e}") from e
        # Dynamic groups have no static members to strip.
        return [AddressGroupEntry(g.name, _members(g.static_value), raw=g) for g in groups if g.static_value]

    def edit_address_group(self, grouping: str, entry: AddressGroupEntry) -> None:
        group = self._raw(grouping, entry)
        group.static_value = list(entry.static_members) or None
        self._write(self._container(grouping), group, "apply", f"[{grouping}] address group '{entry.name}'")

    # ── security rules ───────────────────────────────────────────
    def fetch_security_rules(self, grouping: str, rulebase: str) -> List[SecurityRuleEntry]:
        try:
            rules = SecurityRule.refreshall(self._rulebase(grouping, rulebase), add=False) or []
        except PanDeviceError as e:
            raise FetchError(f"[{grouping}] {rulebase} security rules: {e}") from e
        return [SecurityRuleEntry(r.name, _members(r.source), _members(r.destination), raw=r) for r in rules]

    def edit_security_rule(self, grouping: str, rulebase: str, entry: SecurityRuleEntry) -> None:
        rule = self._raw(grouping, entry)
        rule.source = list(entry.source)
        rule.destination = list(entry.destination)
        self._write(self._rulebase(grouping, rulebase), rule, "apply", f"[{grouping}] {rulebase} security rule '{entry.name}'")

    # ── NAT rules ────────────────────────────────────────────────
    def fetch_nat_rules(self, grouping: str, rulebase: str) -> List[NatRuleEntry]:
        try:
            rules = NatRule.refreshall(self._rulebase(grouping, rulebase), add=False) or []
        except PanDeviceError as e:
            raise FetchError(f"[{grouping}] {rulebase} NAT rules: {e}") from e
        return [self._nat_entry(r) for r in rules]

    @staticmethod
    def _nat_entry(rule: NatRule) -> NatRuleEntry:
        if rule.destination_translated_address:
            dat_type = "static"
        elif getattr(rule, "destination_dynamic_translated_address", None):
            dat_type = "dynamic"
        else:
            dat_type = None
        return NatRuleEntry(
            name=rule.name,
            source=_members(rule.source),
            destination=_members(rule.destination),
            translated_addresses=_members(rule.source_translation_translated_addresses),
            fallback_translated_addresses=_members(rule.source_translation_fallback_translated_addresses),
            nat_type=rule.nat_type,
            to_interface=rule.to_interface,
            service=rule.service,
            source_translation_type=rule.source_translation_type,
            destination_translation_type=dat_type,
            raw=rule,
        )

    def edit_nat_rule(self, grouping: str, rulebase: str, entry: NatRuleEntry) -> None:
        rule = self._raw(grouping, entry)
        rule.source = list(entry.source)
        rule.destination = list(entry.destination)
        rule.source_translation_translated_addresses = list(entry.translated_addresses) or None
        rule.source_translation_fallback_translated_addresses = list(entry.fallback_translated_addresses) or None
        rule.nat_type = entry.nat_type
        rule.to_interface = entry.to_interface
        rule.service = entry.service
        # "none" means no source translation; the SDK models that as unset.
        if entry.source_translation_type and entry.source_translation_type != "none":
            rule.source_translation_type = entry.source_translation_type
        else:
            rule.source_translation_type = None
        self._write(self._rulebase(grouping, rulebase), rule, "apply", f"[{grouping}] {rulebase} NAT rule '{entry.name}'")
