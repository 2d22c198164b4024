# =============================================================================
# core/graph_client.py - Microsoft Graph client for the cloud directory and mail
# =============================================================================

import logging
import time
from typing import Dict, Any, List, Optional

import httpx
from azure.core.exceptions import AzureError
from azure.identity import ClientSecretCredential

from core.exceptions import (
    AccountNotFoundError, DirectoryConnectionError, DirectoryLookupError, NotificationDeliveryError
)
from core.models import CloudAccount, CloudEntry, Sponsor
from core.prefixes import PrefixPolicy
from core.timestamps import parse_timestamp, resolve_last_activity

USER_FIELDS = "id,userPrincipalName,accountEnabled,onPremisesSyncEnabled,signInActivity,createdDateTime,mail"


def _last_sign_in(user: Dict[str, Any]) -> Optional[Any]:
    """Most recent of interactive and non-interactive sign-ins"""
    activity = user.get('signInActivity') if isinstance(user.get('signInActivity'), dict) else {}
    return resolve_last_activity([
        parse_timestamp(activity.get('lastSignInDateTime')),
        parse_timestamp(activity.get('lastNonInteractiveSignInDateTime')),
    ])


def _odata_quote(value: str) -> str:
    return value.replace("'", "''")


class GraphClient:
    """
    Cloud directory operations against Microsoft Graph.

    Uses application permissions (client credentials). Required permissions:
    User.Read.All, AuditLog.Read.All (sign-in activity), User.ReadWrite.All
    (disable/delete) and Mail.Send for the notification sender mailbox.
    """

    GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
    SCOPE = "https://graph.microsoft.com/.default"
    TOKEN_REFRESH_MARGIN = 300

    def __init__(self, tenant_id: str, client_id: str, client_secret: str, timeout: float = 30.0,
                 credential=None, http_client: Optional[httpx.Client] = None):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self._credential = credential
        self._client = http_client
        self._access_token: Optional[str] = None
        self._token_expiry: float = 0.0
        self.logger = logging.getLogger(__name__)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self) -> None:
        """Acquire a token and open the HTTP session"""
        if self._credential is None:
            self._credential = ClientSecretCredential(
                tenant_id=self.tenant_id,
                client_id=self.client_id,
                client_secret=self.client_secret
            )
        if self._client is None:
            self._client = httpx.Client(base_url=self.GRAPH_BASE_URL, timeout=self.timeout)

        self._refresh_token()
        self.logger.info("Successfully authenticated to Microsoft Graph")

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            self._access_token = None

    def _refresh_token(self) -> None:
        try:
            token = self._credential.get_token(self.SCOPE)
        except AzureError as e:
            self.logger.error(f"Failed to authenticate to Microsoft Graph: {e}")
            raise DirectoryConnectionError(f"Failed to authenticate to Microsoft Graph: {e}")
        self._access_token = token.token
        self._token_expiry = float(token.expires_on)

    def _headers(self) -> Dict[str, str]:
        if self._client is None or self._access_token is None:
            self.connect()
        elif time.time() >= self._token_expiry - self.TOKEN_REFRESH_MARGIN:
            self._refresh_token()
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json"
        }

    def _request(self, method: str, url: str, identifier: str = "", **kwargs) -> httpx.Response:
        headers = self._headers()
        try:
            return self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise DirectoryLookupError(f"Graph API {method} {url} failed: {e}", identifier)

    def _check(self, response: httpx.Response, identifier: str, expected=(200,)) -> None:
        if response.status_code == 404:
            raise AccountNotFoundError(f"Cloud object {identifier} not found", identifier)
        if response.status_code not in expected:
            raise DirectoryLookupError(
                f"Graph API error for {identifier}: {response.status_code} - {response.text}",
                identifier
            )

    def list_accounts(self, policy: PrefixPolicy) -> List[CloudAccount]:
        """List cloud users whose UPN carries a privileged prefix"""
        if not policy.leaders:
            return []

        user_filter = " or ".join(
            f"startswith(userPrincipalName,'{_odata_quote(leader)}')" for leader in policy.leaders
        )
        url = "/users"
        params: Optional[Dict[str, Any]] = {"$filter": user_filter, "$select": USER_FIELDS, "$top": 999}
        accounts: List[CloudAccount] = []

        while url:
            response = self._request("GET", url, params=params)
            self._check(response, "users")
            data = response.json()
            for user in data.get('value', []):
                # startswith on UPN is case-insensitive server side; re-check locally
                if not policy.matches(user.get('userPrincipalName')):
                    continue
                accounts.append(CloudAccount(
                    object_id=user.get('id'),
                    user_principal_name=user.get('userPrincipalName') or '',
                    enabled=bool(user.get('accountEnabled')),
                    synced=bool(user.get('onPremisesSyncEnabled')),
                    last_sign_in=_last_sign_in(user),
                    created=parse_timestamp(user.get('createdDateTime')),
                    mail=user.get('mail'),
                ))
            url = data.get('@odata.nextLink')
            params = None

        self.logger.info(f"Found {len(accounts)} privileged accounts in the cloud directory")
        return accounts

    def lookup_account(self, object_id: str) -> CloudEntry:
        """Live enabled-state and sign-in time for one cloud object"""
        response = self._request("GET", f"/users/{object_id}", object_id, params={"$select": USER_FIELDS})
        self._check(response, object_id)
        user = response.json()
        return CloudEntry(
            object_id=object_id,
            enabled=bool(user.get('accountEnabled')),
            last_sign_in=_last_sign_in(user),
            created=parse_timestamp(user.get('createdDateTime')),
        )

    def get_sponsors(self, object_id: str) -> List[Sponsor]:
        """Sponsors of a cloud identity, empty when none are assigned"""
        response = self._request(
            "GET", f"/users/{object_id}/sponsors", object_id,
            params={"$select": "id,mail,userPrincipalName"}
        )
        if response.status_code == 404:
            return []
        self._check(response, object_id)
        return [
            Sponsor(mail=item.get('mail') or None, user_principal_name=item.get('userPrincipalName') or None)
            for item in response.json().get('value', [])
        ]

    def send_mail(self, sender: str, recipient: str, subject: str, html_body: str) -> None:
        """Send an HTML message from the sender mailbox. Any failure raises NotificationDeliveryError."""
        payload = {
            "message": {
                "subject": subject,
                "body": {"contentType": "HTML", "content": html_body},
                "toRecipients": [{"emailAddress": {"address": recipient}}]
            },
            "saveToSentItems": True
        }
        try:
            response = self._request("POST", f"/users/{sender}/sendMail", recipient, json=payload)
        except DirectoryLookupError as e:
            raise NotificationDeliveryError(f"Mail to {recipient} failed: {e.message}", recipient)

        if response.status_code != 202:
            raise NotificationDeliveryError(
                f"Mail to {recipient} failed: {response.status_code} - {response.text}",
                recipient
            )
        self.logger.debug(f"Mail sent to {recipient}: {subject}")

    def disable_account(self, object_id: str) -> None:
        response = self._request("PATCH", f"/users/{object_id}", object_id, json={"accountEnabled": False})
        self._check(response, object_id, expected=(200, 204))
        self.logger.info(f"Disabled cloud account {object_id}")

    def delete_account(self, object_id: str) -> None:
        response = self._request("DELETE", f"/users/{object_id}", object_id)
        self._check(response, object_id, expected=(204,))
        self.logger.info(f"Deleted cloud account {object_id}")
