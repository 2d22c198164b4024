# =============================================================================
# core/orchestrator.py - Remediation pipeline and run finalization
# =============================================================================

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import List, Optional

from core.action_selector import select_action
from core.base_assembler import BaseAccountAssembler
from core.exceptions import (
    DirectoryConnectionError, DirectoryLookupError, NotificationDeliveryError, RemediationError
)
from core.messages import MessageBuilder
from core.models import (
    Action, NotificationStage, RemediationSettings, ResolvedOwner, ResultEntry, RunOutput,
    RunSummary, SkipReason, Status, UnresolvedOwner, WorkingAccount
)
from core.owner_resolver import OwnerResolver
from core.timestamps import format_last_activity, inactive_days, resolve_baseline

FATAL_ERRORS = (NotificationDeliveryError, DirectoryConnectionError)


@dataclass(frozen=True)
class AccountOutcome:
    """A result entry plus what finalization needs to build the retry list"""
    entry: ResultEntry
    account: WorkingAccount
    owner_confirmed: bool = False

    @property
    def retryable(self) -> bool:
        return self.owner_confirmed and self.entry.status == Status.ERROR


class RemediationOrchestrator:
    """
    Drives every assembled account through the remediation pipeline.

    Accounts are processed one at a time in assembly order. A notification
    delivery failure or a directory connection failure aborts the rest of the
    batch; everything else is recorded against the account and the loop moves
    on. run() never raises: it always returns a RunOutput, partially filled
    when the run was aborted.
    """

    def __init__(self, assembler: BaseAccountAssembler, owner_resolver: OwnerResolver, notifier,
                 actions, message_builder: MessageBuilder, settings: RemediationSettings,
                 today: Optional[date] = None):
        self.assembler = assembler
        self.owner_resolver = owner_resolver
        self.notifier = notifier
        self.actions = actions
        self.message_builder = message_builder
        self.settings = settings
        self.today = today
        self.logger = logging.getLogger(self.__class__.__name__)

    def run(self) -> RunOutput:
        started_at = datetime.now(timezone.utc)
        today = self.today or started_at.date()

        mode = self.assembler.mode
        self.logger.info(
            f"Starting {mode.value} run: warn={self.settings.warn_days}d, "
            f"disable={self.settings.disable_days}d, delete={self.settings.delete_days}d, "
            f"deletion_enabled={self.settings.deletion_enabled}, dry_run={self.settings.dry_run}"
        )

        accounts: List[WorkingAccount] = []
        outcomes: List[AccountOutcome] = []
        error: Optional[str] = None

        problems = self.settings.validate()
        if problems:
            error = f"Invalid remediation settings: {'; '.join(problems)}"
        else:
            try:
                accounts = self.assembler.assemble()
            except RemediationError as e:
                error = f"Account assembly failed: {e.message}"
            except Exception as e:
                self.logger.exception("Unexpected error while assembling accounts")
                error = f"Account assembly failed: {e}"

        if error is None:
            for index, account in enumerate(accounts, start=1):
                self.logger.debug(f"[{index}/{len(accounts)}] Processing {account.user_principal_name}")
                try:
                    outcomes.append(self._process(account, today))
                except NotificationDeliveryError as e:
                    error = f"Notification delivery failed for {account.user_principal_name}: {e.message}"
                    break
                except DirectoryConnectionError as e:
                    error = f"Directory connection failed: {e.message}"
                    break

        if error:
            self.logger.error(f"Run aborted: {error}")

        return self._finalize(mode, accounts, outcomes, error, started_at)

    def _process(self, account: WorkingAccount, today: date) -> AccountOutcome:
        """Per-account pipeline guard: only fatal errors escape"""
        try:
            return self._process_account(account, today)
        except FATAL_ERRORS:
            raise
        except RemediationError as e:
            self.logger.error(f"{account.user_principal_name}: {e.message}")
            return AccountOutcome(ResultEntry.failed(account, e.message), account)
        except Exception as e:
            self.logger.exception(f"Unexpected error processing {account.user_principal_name}")
            return AccountOutcome(ResultEntry.failed(account, f"Unexpected error: {e}"), account)

    def _process_account(self, snapshot: WorkingAccount, today: date) -> AccountOutcome:
        if not snapshot.user_principal_name:
            self.logger.warning("Skipping row with empty user_principal_name")
            return AccountOutcome(ResultEntry.skipped(snapshot, SkipReason.NO_IDENTIFIER), snapshot)

        reconciliation = self.assembler.reconcile(snapshot)
        if reconciliation.is_terminal:
            return AccountOutcome(reconciliation.entry, reconciliation.account or snapshot)
        account = reconciliation.account

        baseline, from_creation = resolve_baseline(account.last_logon, account.last_sign_in, account.created)
        if baseline is None:
            self.logger.error(f"{account.user_principal_name}: no logon, sign-in or creation date")
            return AccountOutcome(ResultEntry.failed(account, "Cannot determine last activity"), account)

        days = inactive_days(baseline, today)
        if days < self.settings.warn_days:
            self.logger.debug(f"{account.user_principal_name}: active {days} days ago, below warn threshold")
            return AccountOutcome(ResultEntry.skipped(account, SkipReason.ACTIVITY_DETECTED, days), account)

        try:
            owner = self.owner_resolver.resolve(
                account.sam_account_name, account.upn_local_part,
                account.owner_attribute, account.cloud_object_id
            )
        except DirectoryLookupError as e:
            self.logger.error(f"{account.user_principal_name}: owner lookup failed: {e.message}")
            return AccountOutcome(ResultEntry.failed(account, f"Owner lookup failed: {e.message}", days), account)

        if isinstance(owner, UnresolvedOwner):
            self.logger.warning(f"{account.user_principal_name}: {owner.reason.value}, skipping")
            return AccountOutcome(ResultEntry.skipped(account, owner.reason, days), account)

        action, stage = select_action(
            days, self.settings.warn_days, self.settings.disable_days,
            self.settings.delete_days, self.settings.deletion_enabled
        )

        try:
            return self._remediate(account, days, action, stage, owner, baseline, from_creation)
        except FATAL_ERRORS:
            raise
        except Exception as e:
            self.logger.exception(f"Unexpected error remediating {account.user_principal_name}")
            return AccountOutcome(
                ResultEntry.failed(account, f"Unexpected error: {e}", days, action, stage, owner.address),
                account, owner_confirmed=True
            )

    def _remediate(self, account: WorkingAccount, days: int, action: Action,
                   stage: Optional[NotificationStage], owner: ResolvedOwner,
                   baseline: datetime, from_creation: bool) -> AccountOutcome:
        upn = account.user_principal_name
        dry_run = self.settings.dry_run

        message = self.message_builder.build(stage, upn, format_last_activity(baseline, from_creation), days)
        if dry_run:
            self.logger.info(f"[DRY RUN] Would notify {owner.address} ({stage.value}) about {upn}")
        else:
            self.notifier.send(owner.address, message)

        result = None
        if action == Action.DISABLE:
            if not account.enabled:
                self.logger.info(f"{upn} is already disabled, no disable call needed")
            elif dry_run:
                self.logger.info(f"[DRY RUN] Would disable {upn}")
            else:
                result = self.actions.disable(account)
        elif action == Action.DELETE:
            if dry_run:
                self.logger.info(f"[DRY RUN] Would delete {upn}")
            else:
                result = self.actions.delete(account)

        if result is not None and not result.success:
            self.logger.error(f"{action.value} failed for {upn}: {result.message}")
            return AccountOutcome(
                ResultEntry.failed(account, result.message, days, action, stage, owner.address,
                                   notification_sent=True),
                account, owner_confirmed=True
            )

        self.logger.info(f"{upn}: {action.value} completed after {days} days inactive (owner {owner.address})")
        return AccountOutcome(
            ResultEntry.completed(account, days, action, stage, owner.address),
            account, owner_confirmed=True
        )

    def _finalize(self, mode, accounts: List[WorkingAccount], outcomes: List[AccountOutcome],
                  error: Optional[str], started_at: datetime) -> RunOutput:
        results = [outcome.entry for outcome in outcomes]

        retry = [outcome.account.to_input_row() for outcome in outcomes if outcome.retryable]
        unprocessed = [account for account in accounts[len(outcomes):] if account.user_principal_name]
        retry.extend(account.to_input_row() for account in unprocessed)

        summary = RunSummary.from_entries(results)
        output = RunOutput(
            success=error is None,
            mode=mode,
            summary=summary,
            results=results,
            retry=retry,
            error=error,
            dry_run=self.settings.dry_run,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )
        self.log_summary(output, len(unprocessed))
        return output

    def log_summary(self, output: RunOutput, unprocessed: int) -> None:
        summary = output.summary
        self.logger.info(
            f"Run summary: {summary.total} processed, {summary.completed} completed, "
            f"{summary.skipped} skipped, {summary.errors} errors"
        )
        self.logger.info(
            f"Actions: {summary.warned} warned, {summary.disabled} disabled, "
            f"{summary.deleted} deleted, {summary.notified} notifications"
        )
        if summary.skip_reasons:
            self.logger.info(f"Skip reasons: {summary.skip_reasons}")
        if output.retry:
            self.logger.warning(f"{len(output.retry)} accounts in retry list ({unprocessed} never reached)")
