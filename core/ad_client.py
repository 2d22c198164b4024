# =============================================================================
# core/ad_client.py - On-prem Active Directory client
# =============================================================================

import logging
from typing import Dict, Any, List, Optional

from ldap3 import Server, Connection, ALL, MODIFY_REPLACE
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars

from core.exceptions import AccountNotFoundError, DirectoryConnectionError, DirectoryLookupError
from core.models import DirectoryEntry
from core.prefixes import PrefixPolicy
from core.timestamps import parse_timestamp

ACCOUNT_DISABLE = 0x2
TREE_DELETE_CONTROL = '1.2.840.113556.1.4.805'
PERSON_FILTER = '(objectCategory=person)(objectClass=user)'


def _first(value: Any) -> Any:
    """ldap3 returns multi-valued attributes as lists"""
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _text(value: Any) -> Optional[str]:
    value = _first(value)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class ActiveDirectoryClient:
    """Active Directory client for privileged account lookups and actions"""

    def __init__(self, server_url: str, username: str, password: str, base_dn: str,
                 owner_attribute: str = 'extensionAttribute1', connect_timeout: int = 10,
                 receive_timeout: int = 30, page_size: int = 500):
        self.server_url = server_url
        self.username = username
        self.password = password
        self.base_dn = base_dn
        self.owner_attribute = owner_attribute
        self.connect_timeout = connect_timeout
        self.receive_timeout = receive_timeout
        self.page_size = page_size
        self.connection: Optional[Connection] = None
        self.logger = logging.getLogger(__name__)

    def __enter__(self):
        """Context manager entry. The bind happens on first use."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.disconnect()

    @property
    def attributes(self) -> List[str]:
        return [
            'sAMAccountName', 'userPrincipalName', 'userAccountControl', 'lastLogonTimestamp',
            'whenCreated', 'mail', 'description', 'distinguishedName', self.owner_attribute
        ]

    def connect(self) -> None:
        """Establish connection to Active Directory"""
        try:
            server = Server(self.server_url, get_info=ALL, connect_timeout=self.connect_timeout)
            self.connection = Connection(
                server,
                user=self.username,
                password=self.password,
                auto_bind=True,
                receive_timeout=self.receive_timeout
            )
            self.logger.info("Successfully connected to Active Directory")
        except LDAPException as e:
            self.logger.error(f"Failed to connect to AD: {e}")
            raise DirectoryConnectionError(f"Failed to connect to Active Directory {self.server_url}: {e}")

    def disconnect(self) -> None:
        """Close Active Directory connection"""
        if self.connection:
            self.connection.unbind()
            self.connection = None
            self.logger.info("Disconnected from Active Directory")

    def _ensure_connected(self) -> Connection:
        if not self.connection:
            self.connect()
        return self.connection

    def list_accounts(self, policy: PrefixPolicy, search_base: Optional[str] = None) -> List[DirectoryEntry]:
        """List all user accounts whose sAMAccountName carries a privileged prefix"""
        if not policy.leaders:
            return []

        connection = self._ensure_connected()
        name_filters = ''.join(f"(sAMAccountName={escape_filter_chars(leader)}*)" for leader in policy.leaders)
        search_filter = f"(&{PERSON_FILTER}(|{name_filters}))"
        base = search_base or self.base_dn

        try:
            response = connection.extend.standard.paged_search(
                search_base=base,
                search_filter=search_filter,
                attributes=self.attributes,
                paged_size=self.page_size,
                generator=False
            )
        except LDAPException as e:
            raise DirectoryLookupError(f"Listing accounts under {base} failed: {e}")

        entries = [
            self._to_entry(item.get('dn'), item.get('attributes', {}))
            for item in response or []
            if item.get('type') == 'searchResEntry'
        ]
        self.logger.info(f"Found {len(entries)} privileged accounts in AD under {base}")
        return entries

    def lookup_account(self, identifier: str) -> DirectoryEntry:
        """Look up a single account by sAMAccountName or userPrincipalName"""
        connection = self._ensure_connected()
        escaped = escape_filter_chars(identifier)
        search_filter = f"(&{PERSON_FILTER}(|(sAMAccountName={escaped})(userPrincipalName={escaped})))"

        try:
            connection.search(
                search_base=self.base_dn,
                search_filter=search_filter,
                attributes=self.attributes
            )
        except LDAPException as e:
            raise DirectoryLookupError(f"Error querying user {identifier}: {e}", identifier)

        result_code = (connection.result or {}).get('result', 0)
        if result_code not in (0, 32):
            description = (connection.result or {}).get('description', 'unknown error')
            raise DirectoryLookupError(f"Error querying user {identifier}: {description}", identifier)

        matches = [item for item in connection.response or [] if item.get('type') == 'searchResEntry']
        if not matches:
            self.logger.debug(f"User {identifier} not found in AD")
            raise AccountNotFoundError(f"User {identifier} not found in AD", identifier)

        if len(matches) > 1:
            self.logger.warning(f"Multiple users found for {identifier}, using first match")

        self.logger.debug(f"Found user {identifier} in AD")
        return self._to_entry(matches[0].get('dn'), matches[0].get('attributes', {}))

    def disable_account(self, sam_account_name: str) -> None:
        """Set the ACCOUNTDISABLE flag on userAccountControl"""
        entry = self.lookup_account(sam_account_name)
        connection = self._ensure_connected()
        new_uac = entry.user_account_control | ACCOUNT_DISABLE

        try:
            succeeded = connection.modify(
                entry.distinguished_name,
                {'userAccountControl': [(MODIFY_REPLACE, [new_uac])]}
            )
        except LDAPException as e:
            raise DirectoryLookupError(f"Disabling {sam_account_name} failed: {e}", sam_account_name)

        if not succeeded:
            raise DirectoryLookupError(
                f"Disabling {sam_account_name} failed: {connection.result.get('description')}",
                sam_account_name
            )
        self.logger.info(f"Disabled AD account {sam_account_name}")

    def delete_account(self, sam_account_name: str) -> None:
        """Delete the account object, including any child objects"""
        entry = self.lookup_account(sam_account_name)
        connection = self._ensure_connected()

        try:
            succeeded = connection.delete(entry.distinguished_name, controls=[(TREE_DELETE_CONTROL, True, None)])
        except LDAPException as e:
            raise DirectoryLookupError(f"Deleting {sam_account_name} failed: {e}", sam_account_name)

        if not succeeded:
            raise DirectoryLookupError(
                f"Deleting {sam_account_name} failed: {connection.result.get('description')}",
                sam_account_name
            )
        self.logger.info(f"Deleted AD account {sam_account_name}")

    def _to_entry(self, dn: Optional[str], attributes: Dict[str, Any]) -> DirectoryEntry:
        uac = _first(attributes.get('userAccountControl')) or 0
        return DirectoryEntry(
            sam_account_name=_text(attributes.get('sAMAccountName')) or '',
            user_principal_name=_text(attributes.get('userPrincipalName')),
            enabled=self._is_account_active(int(uac)),
            last_logon=parse_timestamp(_first(attributes.get('lastLogonTimestamp'))),
            created=parse_timestamp(_first(attributes.get('whenCreated'))),
            owner_attribute=_text(attributes.get(self.owner_attribute)),
            mail=_text(attributes.get('mail')),
            description=_text(attributes.get('description')),
            distinguished_name=_text(attributes.get('distinguishedName')) or dn,
            user_account_control=int(uac),
        )

    def _is_account_active(self, user_account_control: int) -> bool:
        """Check if user account is active based on userAccountControl flags"""
        return not bool(user_account_control & ACCOUNT_DISABLE)
