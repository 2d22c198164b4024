"""
Shared fixtures and fake directory / mail collaborators.
"""

import sys
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path

ROOT_DIR = Path(__file__).parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import pytest
from typing import Dict, List, Optional

from core.exceptions import AccountNotFoundError, DirectoryLookupError, NotificationDeliveryError
from core.models import ActionResult, CloudAccount, CloudEntry, DirectoryEntry, Sponsor
from core.prefixes import PrefixPolicy

TODAY = date(2026, 6, 1)

ENV_VARS = [
    "AD_SERVER", "AD_USERNAME", "AD_PASSWORD", "BASE_DN", "AD_SEARCH_BASE", "AD_OWNER_ATTRIBUTE",
    "GRAPH_TENANT_ID", "GRAPH_CLIENT_ID", "GRAPH_CLIENT_SECRET", "ACCOUNT_PREFIXES", "PREFIX_SEPARATOR",
    "NOTIFICATION_SENDER", "NOTIFICATION_OVERRIDE_RECIPIENT", "WARN_THRESHOLD_DAYS",
    "DISABLE_THRESHOLD_DAYS", "DELETE_THRESHOLD_DAYS", "ENABLE_DELETION", "DRY_RUN",
    "OWNER_ATTRIBUTE_KEY", "OWNER_ATTRIBUTE_DELIMITER", "OWNER_ATTRIBUTE_SEPARATOR",
    "OWNER_ATTRIBUTE_CASE_SENSITIVE",
]


def days_ago(days: int) -> datetime:
    """Noon UTC, `days` calendar days before TODAY"""
    return datetime.combine(TODAY - timedelta(days=days), time(12, 0), tzinfo=timezone.utc)


class FakeDirectory:
    """In-memory on-prem directory keyed by sAMAccountName and UPN"""

    def __init__(self, entries: Optional[List[DirectoryEntry]] = None):
        self.entries: Dict[str, DirectoryEntry] = {}
        self.failing: set = set()
        self.disabled: List[str] = []
        self.deleted: List[str] = []
        self.lookups: List[str] = []
        for entry in entries or []:
            self.add(entry)

    def add(self, entry: DirectoryEntry) -> DirectoryEntry:
        self.entries[entry.sam_account_name.lower()] = entry
        if entry.user_principal_name:
            self.entries[entry.user_principal_name.lower()] = entry
        return entry

    def list_accounts(self, policy, search_base=None):
        unique = {id(entry): entry for entry in self.entries.values()}
        return [entry for entry in unique.values() if policy.matches(entry.sam_account_name)]

    def lookup_account(self, identifier):
        self.lookups.append(identifier)
        if identifier.lower() in self.failing:
            raise DirectoryLookupError(f"LDAP timeout for {identifier}", identifier)
        entry = self.entries.get(identifier.lower())
        if entry is None:
            raise AccountNotFoundError(f"User {identifier} not found in AD", identifier)
        return entry

    def disable_account(self, sam_account_name):
        self.disabled.append(sam_account_name)

    def delete_account(self, sam_account_name):
        self.deleted.append(sam_account_name)


class FakeCloud:
    """In-memory cloud directory with sponsors and a mailbox"""

    def __init__(self):
        self.accounts: List[CloudAccount] = []
        self.entries: Dict[str, CloudEntry] = {}
        self.sponsors: Dict[str, List[Sponsor]] = {}
        self.failing: set = set()
        self.disabled: List[str] = []
        self.deleted: List[str] = []

    def list_accounts(self, policy):
        return list(self.accounts)

    def lookup_account(self, object_id):
        if object_id in self.failing:
            raise DirectoryLookupError(f"Graph API error for {object_id}: 503", object_id)
        if object_id not in self.entries:
            raise AccountNotFoundError(f"Cloud object {object_id} not found", object_id)
        return self.entries[object_id]

    def get_sponsors(self, object_id):
        return list(self.sponsors.get(object_id, []))

    def disable_account(self, object_id):
        self.disabled.append(object_id)

    def delete_account(self, object_id):
        self.deleted.append(object_id)


class FakeNotifier:
    """Records notifications; raises for the configured recipients"""

    def __init__(self):
        self.sent = []
        self.fail_for: set = set()

    def send(self, recipient, message):
        if recipient in self.fail_for:
            raise NotificationDeliveryError(f"SMTP relay refused {recipient}", recipient)
        self.sent.append((recipient, message))


class FakeActions:
    """Records disable/delete calls and returns configurable results"""

    def __init__(self):
        self.disabled = []
        self.deleted = []
        self.fail_for: set = set()

    def _result(self, account):
        if account.user_principal_name in self.fail_for:
            return ActionResult(False, "Insufficient access rights")
        return ActionResult(True, "ok")

    def disable(self, account):
        self.disabled.append(account.user_principal_name)
        return self._result(account)

    def delete(self, account):
        self.deleted.append(account.user_principal_name)
        return self._result(account)


@pytest.fixture
def prefix_policy() -> PrefixPolicy:
    return PrefixPolicy.from_list(["adm", "t0"], "-")


@pytest.fixture
def directory() -> FakeDirectory:
    """Owners alice/bob/carol; carol has no mail"""
    return FakeDirectory([
        DirectoryEntry(sam_account_name="alice", user_principal_name="alice@corp.example",
                       enabled=True, mail="alice@corp.example"),
        DirectoryEntry(sam_account_name="bob", user_principal_name="bob@corp.example",
                       enabled=True, mail="bob@corp.example"),
        DirectoryEntry(sam_account_name="carol", user_principal_name="carol@corp.example",
                       enabled=True, mail=None),
    ])


@pytest.fixture
def cloud() -> FakeCloud:
    return FakeCloud()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def actions() -> FakeActions:
    return FakeActions()
