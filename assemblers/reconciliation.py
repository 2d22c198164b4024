# =============================================================================
# assemblers/reconciliation.py - Working set from a caller-supplied snapshot
# =============================================================================

from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.base_assembler import BaseAccountAssembler
from core.exceptions import AccountNotFoundError, DirectoryLookupError
from core.models import AssemblyMode, Reconciliation, ResultEntry, SkipReason, WorkingAccount
from core.prefixes import PrefixPolicy
from core.timestamps import resolve_last_activity


class ReconciliationAssembler(BaseAccountAssembler):
    """
    Filters a snapshot list and re-queries every account before it is actioned.

    Rows with an empty principal name are kept so the orchestrator can record
    them; rows outside the privileged naming convention are dropped here.
    """

    mode = AssemblyMode.RECONCILIATION

    def __init__(self, rows: List[Dict[str, Any]], directory, cloud, prefix_policy: PrefixPolicy):
        super().__init__(directory, cloud, prefix_policy)
        self.rows = rows

    def assemble(self) -> List[WorkingAccount]:
        accounts: List[WorkingAccount] = []
        dropped = 0

        for row in self.rows:
            account = WorkingAccount.from_input_row(row)
            if account.user_principal_name and not self.matches_prefix(account):
                self.logger.debug(f"Dropping {account.user_principal_name}: no privileged prefix")
                dropped += 1
                continue
            accounts.append(account)

        self.logger.info(f"Loaded {len(accounts)} snapshot accounts ({dropped} dropped by prefix filter)")
        return accounts

    def reconcile(self, account: WorkingAccount) -> Reconciliation:
        if not account.has_identifier:
            return Reconciliation(entry=ResultEntry.failed(
                account, "Missing identifiers: neither sam_account_name nor object_id supplied"
            ))

        try:
            if account.sam_account_name:
                live = self._reconcile_on_prem(account)
            else:
                live = self._reconcile_cloud(account)
        except AccountNotFoundError as e:
            self.logger.info(f"{account.user_principal_name} no longer exists ({e.message})")
            return Reconciliation(entry=ResultEntry.skipped(account, SkipReason.ALREADY_ACTIONED))
        except DirectoryLookupError as e:
            self.logger.error(f"Live lookup failed for {account.user_principal_name}: {e.message}")
            return Reconciliation(entry=ResultEntry.failed(account, f"Live lookup failed: {e.message}"))

        if account.enabled and not live.enabled:
            self.logger.info(f"{account.user_principal_name} was disabled since the snapshot was taken")
            return Reconciliation(entry=ResultEntry.skipped(live, SkipReason.ALREADY_ACTIONED))

        return Reconciliation(account=live)

    def _reconcile_on_prem(self, account: WorkingAccount) -> WorkingAccount:
        entry = self.directory.lookup_account(account.sam_account_name)
        live_sign_in = self._cloud_sign_in(account.cloud_object_id) if account.cloud_object_id else None
        # most recent of the live and snapshot sign-in
        last_sign_in = resolve_last_activity([live_sign_in, account.last_sign_in])

        return replace(
            account,
            sam_account_name=entry.sam_account_name or account.sam_account_name,
            enabled=entry.enabled,
            last_logon=entry.last_logon,
            last_sign_in=last_sign_in,
            created=entry.created or account.created,
            owner_attribute=entry.owner_attribute,
            description=entry.description or account.description,
        )

    def _reconcile_cloud(self, account: WorkingAccount) -> WorkingAccount:
        if self.cloud is None:
            raise DirectoryLookupError("Cloud directory is not configured", account.cloud_object_id)

        entry = self.cloud.lookup_account(account.cloud_object_id)
        return replace(
            account,
            enabled=entry.enabled,
            last_logon=None,
            last_sign_in=resolve_last_activity([entry.last_sign_in, account.last_sign_in]),
            created=entry.created or account.created,
        )

    def _cloud_sign_in(self, object_id: str) -> Optional[datetime]:
        if self.cloud is None:
            return None
        try:
            return self.cloud.lookup_account(object_id).last_sign_in
        except AccountNotFoundError:
            self.logger.warning(f"Cloud object {object_id} not found; using on-prem logon only")
            return None
