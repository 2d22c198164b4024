# =============================================================================
# core/action_selector.py - Threshold state model
# =============================================================================

from core.models import Action, ActionDecision, NotificationStage


def select_action(inactive_days: int, warn_days: int, disable_days: int,
                  delete_days: int, deletion_enabled: bool) -> ActionDecision:
    """
    Map inactivity to exactly one (action, stage) pair.

    Thresholds are inclusive and checked highest first. Reaching the delete
    threshold without deletion enabled disables the account but still sends
    the deletion-stage notification.
    """
    if inactive_days >= delete_days:
        action = Action.DELETE if deletion_enabled else Action.DISABLE
        return action, NotificationStage.DELETION

    if inactive_days >= disable_days:
        return Action.DISABLE, NotificationStage.DISABLED

    if inactive_days >= warn_days:
        return Action.NOTIFY, NotificationStage.WARNING

    return Action.NONE, None
