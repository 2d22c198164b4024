# =============================================================================
# utils/config.py - Configuration management
# =============================================================================

import os
from typing import Optional, List
from dotenv import load_dotenv

from core.exceptions import ConfigurationError
from core.models import RemediationSettings
from core.owner_resolver import OwnerAttributePolicy
from core.prefixes import PrefixPolicy

TRUE_VALUES = ('1', 'true', 'yes', 'on')


class Config:
    """Configuration management"""

    def __init__(self, dotenv_path: Optional[str] = None):
        load_dotenv(dotenv_path)

    @staticmethod
    def _int(name: str, default: int) -> int:
        raw = os.getenv(name)
        if raw is None or not raw.strip():
            return default
        try:
            return int(raw.strip())
        except ValueError:
            raise ConfigurationError(f"{name} must be an integer (got {raw!r})")

    @staticmethod
    def _bool(name: str, default: bool = False) -> bool:
        raw = os.getenv(name)
        if raw is None or not raw.strip():
            return default
        return raw.strip().lower() in TRUE_VALUES

    # --- Active Directory -------------------------------------------------

    @property
    def ad_server(self) -> Optional[str]:
        return os.getenv("AD_SERVER")

    @property
    def ad_username(self) -> Optional[str]:
        return os.getenv("AD_USERNAME")

    @property
    def ad_password(self) -> Optional[str]:
        return os.getenv("AD_PASSWORD")

    @property
    def base_dn(self) -> Optional[str]:
        return os.getenv("BASE_DN")

    @property
    def search_base(self) -> Optional[str]:
        return os.getenv("AD_SEARCH_BASE") or self.base_dn

    @property
    def ad_owner_attribute(self) -> str:
        return os.getenv("AD_OWNER_ATTRIBUTE") or "extensionAttribute1"

    # --- Microsoft Graph --------------------------------------------------

    @property
    def graph_tenant_id(self) -> Optional[str]:
        return os.getenv("GRAPH_TENANT_ID")

    @property
    def graph_client_id(self) -> Optional[str]:
        return os.getenv("GRAPH_CLIENT_ID")

    @property
    def graph_client_secret(self) -> Optional[str]:
        return os.getenv("GRAPH_CLIENT_SECRET")

    # --- Account selection and owner resolution ---------------------------

    @property
    def account_prefixes(self) -> List[str]:
        raw = os.getenv("ACCOUNT_PREFIXES", "")
        return [p.strip() for p in raw.split(",") if p.strip()]

    @property
    def prefix_separator(self) -> str:
        return os.getenv("PREFIX_SEPARATOR") or "-"

    def prefix_policy(self) -> PrefixPolicy:
        return PrefixPolicy.from_list(self.account_prefixes, self.prefix_separator)

    def owner_attribute_policy(self) -> OwnerAttributePolicy:
        return OwnerAttributePolicy(
            key=os.getenv("OWNER_ATTRIBUTE_KEY") or "owner",
            pair_delimiter=os.getenv("OWNER_ATTRIBUTE_DELIMITER") or ";",
            key_value_separator=os.getenv("OWNER_ATTRIBUTE_SEPARATOR") or "=",
            case_sensitive=self._bool("OWNER_ATTRIBUTE_CASE_SENSITIVE", True),
        )

    # --- Notifications ----------------------------------------------------

    @property
    def notification_sender(self) -> Optional[str]:
        return os.getenv("NOTIFICATION_SENDER")

    @property
    def notification_override_recipient(self) -> Optional[str]:
        return os.getenv("NOTIFICATION_OVERRIDE_RECIPIENT") or None

    # --- Thresholds -------------------------------------------------------

    def remediation_settings(self, warn_days: Optional[int] = None, disable_days: Optional[int] = None,
                             delete_days: Optional[int] = None, deletion_enabled: Optional[bool] = None,
                             dry_run: Optional[bool] = None) -> RemediationSettings:
        """Build settings from the environment; explicit arguments win"""
        settings = RemediationSettings(
            warn_days=warn_days if warn_days is not None else self._int("WARN_THRESHOLD_DAYS", 90),
            disable_days=disable_days if disable_days is not None else self._int("DISABLE_THRESHOLD_DAYS", 120),
            delete_days=delete_days if delete_days is not None else self._int("DELETE_THRESHOLD_DAYS", 180),
            deletion_enabled=deletion_enabled or self._bool("ENABLE_DELETION"),
            dry_run=dry_run or self._bool("DRY_RUN"),
        )
        problems = settings.validate()
        if problems:
            raise ConfigurationError("; ".join(problems))
        return settings

    # --- Validation -------------------------------------------------------

    def validate(self) -> bool:
        """Validate that all required configuration is present"""
        return not self.get_missing_vars()

    def get_missing_vars(self) -> List[str]:
        """Get list of missing configuration variables"""
        vars_and_names = [
            (self.ad_server, "AD_SERVER"),
            (self.ad_username, "AD_USERNAME"),
            (self.ad_password, "AD_PASSWORD"),
            (self.base_dn, "BASE_DN"),
            (self.graph_tenant_id, "GRAPH_TENANT_ID"),
            (self.graph_client_id, "GRAPH_CLIENT_ID"),
            (self.graph_client_secret, "GRAPH_CLIENT_SECRET"),
            (self.account_prefixes, "ACCOUNT_PREFIXES"),
            (self.notification_sender, "NOTIFICATION_SENDER"),
        ]
        return [name for var, name in vars_and_names if not var]
