# =============================================================================
# core/account_actions.py - Disable/delete dispatch to the owning directory
# =============================================================================

import logging
from typing import Callable

from core.exceptions import RemediationError
from core.models import ActionResult, WorkingAccount


class AccountActionExecutor:
    """
    Disables or deletes an account in the directory that owns it.

    Accounts with a sAMAccountName are actioned in AD (the change syncs to the
    cloud); cloud-only identities are actioned through Graph. Failures are
    returned as ActionResult data, never raised.
    """

    def __init__(self, directory, cloud):
        self.directory = directory
        self.cloud = cloud
        self.logger = logging.getLogger(self.__class__.__name__)

    def disable(self, account: WorkingAccount) -> ActionResult:
        return self._execute('disable', account)

    def delete(self, account: WorkingAccount) -> ActionResult:
        return self._execute('delete', account)

    def _execute(self, verb: str, account: WorkingAccount) -> ActionResult:
        if account.sam_account_name:
            target = f"AD account {account.sam_account_name}"
            call: Callable[[str], None] = getattr(self.directory, f"{verb}_account")
            identifier = account.sam_account_name
        elif account.cloud_object_id and self.cloud is not None:
            target = f"cloud account {account.cloud_object_id}"
            call = getattr(self.cloud, f"{verb}_account")
            identifier = account.cloud_object_id
        else:
            return ActionResult(False, f"Cannot {verb} {account.user_principal_name}: no actionable identifier")

        try:
            call(identifier)
        except RemediationError as e:
            self.logger.error(f"Failed to {verb} {target}: {e.message}")
            return ActionResult(False, e.message)
        except Exception as e:
            self.logger.error(f"Unexpected error trying to {verb} {target}: {e}")
            return ActionResult(False, f"Unexpected error: {e}")

        return ActionResult(True, f"{verb.capitalize()}d {target}")
