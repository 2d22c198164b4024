# =============================================================================
# assemblers/discovery.py - Working set from live AD and cloud listings
# =============================================================================

from typing import Dict, List, Optional

from core.base_assembler import BaseAccountAssembler
from core.models import AssemblyMode, CloudAccount, Reconciliation, WorkingAccount
from core.prefixes import PrefixPolicy


class DiscoveryAssembler(BaseAccountAssembler):
    """Queries both directories and merges synced identities into their AD account"""

    mode = AssemblyMode.DISCOVERY

    def __init__(self, directory, cloud, prefix_policy: PrefixPolicy, search_base: Optional[str] = None):
        super().__init__(directory, cloud, prefix_policy)
        self.search_base = search_base

    def assemble(self) -> List[WorkingAccount]:
        on_prem = self.directory.list_accounts(self.prefix_policy, self.search_base)
        cloud_accounts: List[CloudAccount] = self.cloud.list_accounts(self.prefix_policy) if self.cloud else []

        synced: Dict[str, CloudAccount] = {
            cloud.user_principal_name.lower(): cloud
            for cloud in cloud_accounts
            if cloud.synced and cloud.user_principal_name
        }

        accounts: List[WorkingAccount] = []
        merged = 0

        for entry in on_prem:
            if not entry.user_principal_name:
                self.logger.warning(f"Skipping AD account {entry.sam_account_name} with no userPrincipalName")
                continue

            match = synced.get(entry.user_principal_name.lower())
            if match:
                merged += 1

            accounts.append(WorkingAccount(
                user_principal_name=entry.user_principal_name,
                sam_account_name=entry.sam_account_name,
                enabled=entry.enabled,
                last_logon=entry.last_logon,
                last_sign_in=match.last_sign_in if match else None,
                created=entry.created,
                cloud_object_id=match.object_id if match else None,
                owner_attribute=entry.owner_attribute,
                description=entry.description,
            ))

        cloud_only = 0
        for cloud in cloud_accounts:
            if cloud.synced:
                continue
            cloud_only += 1
            accounts.append(WorkingAccount(
                user_principal_name=cloud.user_principal_name,
                enabled=cloud.enabled,
                last_sign_in=cloud.last_sign_in,
                created=cloud.created,
                cloud_object_id=cloud.object_id,
            ))

        self.logger.info(
            f"Assembled {len(accounts)} accounts: {len(accounts) - cloud_only} on-prem "
            f"({merged} matched to cloud), {cloud_only} cloud-only"
        )
        return accounts

    def reconcile(self, account: WorkingAccount) -> Reconciliation:
        """Listing data is already live"""
        return Reconciliation(account=account)
