# =============================================================================
# core/owner_resolver.py - Notification owner resolution chain
# =============================================================================

import logging
from dataclasses import dataclass
from typing import Optional, Union

from core.exceptions import AccountNotFoundError
from core.models import (
    DirectoryEntry, OwnerStrategy, ResolvedOwner, SkipReason, UnresolvedOwner, UNRESOLVED
)
from core.prefixes import PrefixPolicy

OwnerResolution = Union[ResolvedOwner, UnresolvedOwner]


@dataclass(frozen=True)
class OwnerAttributePolicy:
    """How the free-text owner attribute is parsed, e.g. 'owner=jdoe;team=ops'"""
    key: str = "owner"
    pair_delimiter: str = ";"
    key_value_separator: str = "="
    case_sensitive: bool = True

    def parse(self, text: Optional[str]) -> Optional[str]:
        """Return the owner value, or None when the key is absent or empty"""
        if not text:
            return None

        wanted = self.key if self.case_sensitive else self.key.lower()
        for pair in text.split(self.pair_delimiter):
            if self.key_value_separator not in pair:
                continue
            key, value = pair.split(self.key_value_separator, 1)
            key = key.strip() if self.case_sensitive else key.strip().lower()
            if key == wanted:
                return value.strip() or None
        return None


class OwnerResolver:
    """Tries prefix strip, extension attribute, then cloud sponsor; first success wins"""

    def __init__(self, directory, cloud, prefix_policy: PrefixPolicy,
                 attribute_policy: Optional[OwnerAttributePolicy] = None):
        self.directory = directory
        self.cloud = cloud
        self.prefix_policy = prefix_policy
        self.attribute_policy = attribute_policy or OwnerAttributePolicy()
        self.logger = logging.getLogger(self.__class__.__name__)

    def resolve(self, sam_account_name: Optional[str], upn_local_part: Optional[str],
                owner_attribute: Optional[str], cloud_object_id: Optional[str]) -> OwnerResolution:
        """
        Resolve the notification owner for a privileged account.

        A strategy that finds an owner identity without a mail address ends the
        chain with a NO_EMAIL result; it does not fall through to the sponsor
        lookup. Directory lookup failures propagate to the caller.
        """
        source = sam_account_name or upn_local_part
        candidate = self.prefix_policy.strip(source)
        if candidate:
            result = self._verify(candidate, OwnerStrategy.PREFIX_STRIP)
            if result is not None:
                return result
        else:
            self.logger.debug(f"No configured prefix on '{source}', skipping prefix strip")

        attribute_owner = self.attribute_policy.parse(owner_attribute)
        if attribute_owner:
            result = self._verify(attribute_owner, OwnerStrategy.EXTENSION_ATTRIBUTE)
            if result is not None:
                return result

        if cloud_object_id and self.cloud is not None:
            return self._resolve_sponsor(cloud_object_id)

        return UNRESOLVED

    def _verify(self, identifier: str, strategy: OwnerStrategy) -> Optional[OwnerResolution]:
        """Look the owner up on-prem; None means not found and the chain continues"""
        try:
            entry: DirectoryEntry = self.directory.lookup_account(identifier)
        except AccountNotFoundError:
            self.logger.debug(f"{strategy.value}: owner candidate '{identifier}' not found in AD")
            return None

        if not entry.mail:
            self.logger.warning(f"{strategy.value}: owner '{identifier}' exists but has no mail address")
            return UnresolvedOwner(reason=SkipReason.NO_EMAIL, identity=entry.sam_account_name)

        self.logger.debug(f"{strategy.value}: resolved owner '{identifier}' -> {entry.mail}")
        return ResolvedOwner(address=entry.mail, strategy=strategy, identity=entry.sam_account_name)

    def _resolve_sponsor(self, cloud_object_id: str) -> OwnerResolution:
        sponsors = self.cloud.get_sponsors(cloud_object_id)
        if not sponsors:
            self.logger.debug(f"No sponsors for cloud object {cloud_object_id}")
            return UNRESOLVED

        sponsor = sponsors[0]
        address = sponsor.mail or sponsor.user_principal_name
        if not address:
            return UNRESOLVED

        return ResolvedOwner(
            address=address,
            strategy=OwnerStrategy.SPONSOR,
            identity=sponsor.user_principal_name or address,
        )
