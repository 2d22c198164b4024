# =============================================================================
# core/models.py - Unified data models
# =============================================================================

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional, Tuple
from enum import Enum

from core.timestamps import parse_timestamp


class AssemblyMode(Enum):
    """How the working set of accounts is built"""
    DISCOVERY = "discovery"
    RECONCILIATION = "reconciliation"


class Action(Enum):
    """Remediation action taken for an account"""
    NONE = "none"
    NOTIFY = "notify"
    DISABLE = "disable"
    DELETE = "delete"


class NotificationStage(Enum):
    """Which notification template was sent to the owner"""
    WARNING = "warning"
    DISABLED = "disabled"
    DELETION = "deletion"


class Status(Enum):
    """Final status of a result entry"""
    COMPLETED = "completed"
    SKIPPED = "skipped"
    ERROR = "error"


class SkipReason(Enum):
    """Deliberate decisions not to act on an account. Never retried."""
    NO_IDENTIFIER = "no identifier"
    ACTIVITY_DETECTED = "activity detected"
    ALREADY_ACTIONED = "already actioned since snapshot"
    NO_OWNER = "no owner found"
    NO_EMAIL = "no email found"


class OwnerStrategy(Enum):
    """Owner resolution strategies, in priority order"""
    PREFIX_STRIP = "prefix_strip"
    EXTENSION_ATTRIBUTE = "extension_attribute"
    SPONSOR = "sponsor"


# Caller-input contract for reconciliation mode and the retry list
INPUT_COLUMNS = [
    'user_principal_name', 'sam_account_name', 'object_id', 'enabled',
    'last_logon', 'last_sign_in', 'created', 'owner_attribute', 'description'
]

TRUE_VALUES = {'true', 'yes', 'y', '1'}


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _format_timestamp(value: Optional[datetime]) -> str:
    return value.isoformat() if value else ''


@dataclass(frozen=True)
class WorkingAccount:
    """One directory identity under evaluation"""
    user_principal_name: str
    sam_account_name: Optional[str] = None
    enabled: bool = False
    last_logon: Optional[datetime] = None
    last_sign_in: Optional[datetime] = None
    created: Optional[datetime] = None
    cloud_object_id: Optional[str] = None
    owner_attribute: Optional[str] = None
    description: Optional[str] = None

    @property
    def has_identifier(self) -> bool:
        """True when the account can be looked up or actioned somewhere"""
        return bool(self.sam_account_name or self.cloud_object_id)

    @property
    def upn_local_part(self) -> Optional[str]:
        if not self.user_principal_name:
            return None
        return self.user_principal_name.split('@', 1)[0] or None

    @classmethod
    def from_input_row(cls, row: Dict[str, Any]) -> 'WorkingAccount':
        """Build a snapshot account from a caller-supplied row"""
        enabled_raw = _clean(row.get('enabled')) or ''
        return cls(
            user_principal_name=_clean(row.get('user_principal_name')) or '',
            sam_account_name=_clean(row.get('sam_account_name')),
            enabled=enabled_raw.lower() in TRUE_VALUES,
            last_logon=parse_timestamp(row.get('last_logon')),
            last_sign_in=parse_timestamp(row.get('last_sign_in')),
            created=parse_timestamp(row.get('created')),
            cloud_object_id=_clean(row.get('object_id')),
            owner_attribute=_clean(row.get('owner_attribute')),
            description=_clean(row.get('description')),
        )

    def to_input_row(self) -> Dict[str, str]:
        """Re-express the account in the caller-input contract"""
        return {
            'user_principal_name': self.user_principal_name or '',
            'sam_account_name': self.sam_account_name or '',
            'object_id': self.cloud_object_id or '',
            'enabled': 'true' if self.enabled else 'false',
            'last_logon': _format_timestamp(self.last_logon),
            'last_sign_in': _format_timestamp(self.last_sign_in),
            'created': _format_timestamp(self.created),
            'owner_attribute': self.owner_attribute or '',
            'description': self.description or '',
        }


@dataclass(frozen=True)
class CloudAccount:
    """Cloud directory identity as returned by the listing call"""
    object_id: str
    user_principal_name: str
    enabled: bool = True
    synced: bool = False
    last_sign_in: Optional[datetime] = None
    created: Optional[datetime] = None
    mail: Optional[str] = None


@dataclass(frozen=True)
class DirectoryEntry:
    """Live on-prem directory record"""
    sam_account_name: str
    user_principal_name: Optional[str] = None
    enabled: bool = False
    last_logon: Optional[datetime] = None
    created: Optional[datetime] = None
    owner_attribute: Optional[str] = None
    mail: Optional[str] = None
    description: Optional[str] = None
    distinguished_name: Optional[str] = None
    user_account_control: int = 0


@dataclass(frozen=True)
class CloudEntry:
    """Live cloud directory record"""
    object_id: str
    enabled: bool = False
    last_sign_in: Optional[datetime] = None
    created: Optional[datetime] = None


@dataclass(frozen=True)
class Sponsor:
    """Cloud sponsor of an identity"""
    mail: Optional[str] = None
    user_principal_name: Optional[str] = None


@dataclass(frozen=True)
class ResolvedOwner:
    """Notification owner found by the resolution chain"""
    address: str
    strategy: OwnerStrategy
    identity: str


@dataclass(frozen=True)
class UnresolvedOwner:
    """Owner resolution failed; reason tells the caller which skip to record"""
    reason: SkipReason = SkipReason.NO_OWNER
    identity: Optional[str] = None


UNRESOLVED = UnresolvedOwner()


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a disable/delete call"""
    success: bool
    message: str = ""


@dataclass(frozen=True)
class NotificationMessage:
    """Rendered notification"""
    subject: str
    body: str


@dataclass(frozen=True)
class RemediationSettings:
    """Threshold and behaviour switches for a run"""
    warn_days: int = 90
    disable_days: int = 120
    delete_days: int = 180
    deletion_enabled: bool = False
    dry_run: bool = False

    def validate(self) -> List[str]:
        """Return a list of problems, empty when the settings are usable"""
        problems = []
        for name in ('warn_days', 'disable_days', 'delete_days'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                problems.append(f"{name} must be a non-negative integer (got {value!r})")
        if not problems and not (self.warn_days <= self.disable_days <= self.delete_days):
            problems.append(
                f"thresholds must satisfy warn <= disable <= delete "
                f"(got {self.warn_days}/{self.disable_days}/{self.delete_days})"
            )
        return problems


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ResultEntry:
    """One outcome record per processed account"""
    user_principal_name: str
    sam_account_name: Optional[str]
    status: Status
    inactive_days: Optional[int] = None
    action: Action = Action.NONE
    stage: Optional[NotificationStage] = None
    notification_sent: bool = False
    notification_recipient: Optional[str] = None
    skip_reason: Optional[SkipReason] = None
    error: Optional[str] = None
    processed_at: datetime = field(default_factory=_utc_now)

    def __post_init__(self):
        if (self.status == Status.SKIPPED) != (self.skip_reason is not None):
            raise ValueError("skip_reason must be set exactly when status is SKIPPED")
        if (self.status == Status.ERROR) != bool(self.error):
            raise ValueError("error must be set exactly when status is ERROR")

    @classmethod
    def completed(cls, account: WorkingAccount, inactive_days: int, action: Action,
                  stage: Optional[NotificationStage], recipient: Optional[str],
                  notification_sent: bool = True) -> 'ResultEntry':
        return cls(
            user_principal_name=account.user_principal_name,
            sam_account_name=account.sam_account_name,
            status=Status.COMPLETED,
            inactive_days=inactive_days,
            action=action,
            stage=stage,
            notification_sent=notification_sent,
            notification_recipient=recipient,
        )

    @classmethod
    def skipped(cls, account: WorkingAccount, reason: SkipReason,
                inactive_days: Optional[int] = None) -> 'ResultEntry':
        return cls(
            user_principal_name=account.user_principal_name,
            sam_account_name=account.sam_account_name,
            status=Status.SKIPPED,
            inactive_days=inactive_days,
            skip_reason=reason,
        )

    @classmethod
    def failed(cls, account: WorkingAccount, error: str, inactive_days: Optional[int] = None,
               action: Action = Action.NONE, stage: Optional[NotificationStage] = None,
               recipient: Optional[str] = None, notification_sent: bool = False) -> 'ResultEntry':
        return cls(
            user_principal_name=account.user_principal_name,
            sam_account_name=account.sam_account_name,
            status=Status.ERROR,
            inactive_days=inactive_days,
            action=action,
            stage=stage,
            notification_sent=notification_sent,
            notification_recipient=recipient,
            error=error,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user_principal_name': self.user_principal_name,
            'sam_account_name': self.sam_account_name or '',
            'inactive_days': self.inactive_days,
            'action': self.action.value,
            'stage': self.stage.value if self.stage else '',
            'notification_sent': self.notification_sent,
            'notification_recipient': self.notification_recipient or '',
            'status': self.status.value,
            'skip_reason': self.skip_reason.value if self.skip_reason else '',
            'error': self.error or '',
            'processed_at': self.processed_at.isoformat(),
        }


RESULT_COLUMNS = [
    'user_principal_name', 'sam_account_name', 'inactive_days', 'action', 'stage',
    'notification_sent', 'notification_recipient', 'status', 'skip_reason', 'error',
    'processed_at'
]


@dataclass
class RunSummary:
    """Counters derived from the result list"""
    total: int = 0
    completed: int = 0
    skipped: int = 0
    errors: int = 0
    notified: int = 0
    warned: int = 0
    disabled: int = 0
    deleted: int = 0
    skip_reasons: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_entries(cls, entries: List[ResultEntry]) -> 'RunSummary':
        summary = cls(total=len(entries))
        for entry in entries:
            if entry.status == Status.COMPLETED:
                summary.completed += 1
                if entry.action == Action.NOTIFY:
                    summary.warned += 1
                elif entry.action == Action.DISABLE:
                    summary.disabled += 1
                elif entry.action == Action.DELETE:
                    summary.deleted += 1
            elif entry.status == Status.SKIPPED:
                summary.skipped += 1
                reason = entry.skip_reason.value
                summary.skip_reasons[reason] = summary.skip_reasons.get(reason, 0) + 1
            else:
                summary.errors += 1

            if entry.notification_sent:
                summary.notified += 1

        return summary

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': self.total,
            'completed': self.completed,
            'skipped': self.skipped,
            'errors': self.errors,
            'notified': self.notified,
            'warned': self.warned,
            'disabled': self.disabled,
            'deleted': self.deleted,
            'skip_reasons': dict(self.skip_reasons),
        }


@dataclass
class RunOutput:
    """Whole-run result, always returned, even after an abort"""
    success: bool
    mode: AssemblyMode
    summary: RunSummary
    results: List[ResultEntry] = field(default_factory=list)
    retry: List[Dict[str, str]] = field(default_factory=list)
    error: Optional[str] = None
    dry_run: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'error': self.error,
            'mode': self.mode.value,
            'dry_run': self.dry_run,
            'started_at': _format_timestamp(self.started_at),
            'finished_at': _format_timestamp(self.finished_at),
            'summary': self.summary.to_dict(),
            'results': [entry.to_dict() for entry in self.results],
            'retry': list(self.retry),
        }


@dataclass(frozen=True)
class Reconciliation:
    """Outcome of a live re-query: either a live account or a terminal entry"""
    account: Optional[WorkingAccount] = None
    entry: Optional[ResultEntry] = None

    @property
    def is_terminal(self) -> bool:
        return self.entry is not None


ActionDecision = Tuple[Action, Optional[NotificationStage]]
