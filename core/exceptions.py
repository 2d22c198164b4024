# =============================================================================
# core/exceptions.py - Error hierarchy for directory and notification failures
# =============================================================================


class RemediationError(Exception):
    """Base error for the remediation tool"""

    def __init__(self, message: str, identifier: str = ""):
        super().__init__(message)
        self.message = message
        self.identifier = identifier


class ConfigurationError(RemediationError):
    """Missing or invalid configuration"""


class DirectoryConnectionError(RemediationError):
    """Could not connect or authenticate to a directory. Aborts the run."""


class DirectoryLookupError(RemediationError):
    """A directory query failed for a reason other than the object not existing"""


class AccountNotFoundError(RemediationError):
    """The requested identity does not exist in the directory"""


class NotificationDeliveryError(RemediationError):
    """Mail transport failure. Aborts the run."""
