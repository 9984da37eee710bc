"""
The policy-store interface the pipeline works against.

Fetch/list methods raise FetchError (list_groupings raises EnumerationError),
edit/delete methods raise RemoteEditError. Implementations own transport,
authentication and any retry policy.
"""

import abc
from typing import List

from pano_decom.models import AddressGroupEntry, AddressObject, NatRuleEntry, SecurityRuleEntry


class PolicyStore(abc.ABC):
    @abc.abstractmethod
    def list_groupings(self) -> List[str]:
        """All groupings, including the synthetic shared one."""

    @abc.abstractmethod
    def fetch_address_objects(self, grouping: str) -> List[AddressObject]:
        ...

    @abc.abstractmethod
    def fetch_address_groups(self, grouping: str) -> List[AddressGroupEntry]:
        ...

    @abc.abstractmethod
    def edit_address_group(self, grouping: str, entry: AddressGroupEntry) -> None:
        ...

    @abc.abstractmethod
    def fetch_security_rules(self, grouping: str, rulebase: str) -> List[SecurityRuleEntry]:
        ...

    @abc.abstractmethod
    def edit_security_rule(self, grouping: str, rulebase: str, entry: SecurityRuleEntry) -> None:
        ...

    @abc.abstractmethod
    def fetch_nat_rules(self, grouping: str, rulebase: str) -> List[NatRuleEntry]:
        ...

    @abc.abstractmethod
    def edit_nat_rule(self, grouping: str, rulebase: str, entry: NatRuleEntry) -> None:
        ...

    @abc.abstractmethod
    def list_address_object_names(self, grouping: str) -> List[str]:
        ...

    @abc.abstractmethod
    def delete_address_object(self, grouping: str, name: str) -> None:
        ...
