# =============================================================================
# core/base_assembler.py - Abstract working-set assembler
# =============================================================================

from abc import ABC, abstractmethod
from typing import List
import logging

from core.models import AssemblyMode, Reconciliation, WorkingAccount
from core.prefixes import PrefixPolicy


class BaseAccountAssembler(ABC):
    """Builds the working set for a run and, where needed, re-queries each account live"""

    mode: AssemblyMode

    def __init__(self, directory, cloud, prefix_policy: PrefixPolicy):
        self.directory = directory
        self.cloud = cloud
        self.prefix_policy = prefix_policy
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def assemble(self) -> List[WorkingAccount]:
        """Return the accounts to process, in processing order"""
        pass

    @abstractmethod
    def reconcile(self, account: WorkingAccount) -> Reconciliation:
        """Return the live account, or a terminal result entry when processing must stop"""
        pass

    def matches_prefix(self, account: WorkingAccount) -> bool:
        """Privileged naming check against the secondary id or the UPN local part"""
        return (self.prefix_policy.matches(account.sam_account_name)
                or self.prefix_policy.matches(account.upn_local_part))
