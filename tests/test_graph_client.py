"""
Tests for the Microsoft Graph client against a mocked transport.
"""

import json
import time
from datetime import datetime, timezone
from types import SimpleNamespace

import httpx
import pytest
from azure.core.exceptions import ClientAuthenticationError

from core.exceptions import (
    AccountNotFoundError, DirectoryConnectionError, DirectoryLookupError, NotificationDeliveryError
)
from core.graph_client import GraphClient
from core.prefixes import PrefixPolicy


class FakeCredential:

    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    def get_token(self, *scopes):
        self.calls += 1
        if self.error:
            raise self.error
        return SimpleNamespace(token=f"token-{self.calls}", expires_on=int(time.time()) + 3600)


def make_client(handler, credential=None):
    http_client = httpx.Client(base_url=GraphClient.GRAPH_BASE_URL, transport=httpx.MockTransport(handler))
    return GraphClient("tenant", "client", "secret", credential=credential or FakeCredential(),
                       http_client=http_client)


class TestListAccounts:

    def test_follows_next_link_and_rechecks_prefix(self):
        requests = []

        def handler(request):
            requests.append(request)
            if "skiptoken" in str(request.url):
                return httpx.Response(200, json={"value": [
                    {"id": "2", "userPrincipalName": "adm-bob@corp.example", "accountEnabled": False,
                     "onPremisesSyncEnabled": None}
                ]})
            return httpx.Response(200, json={
                "value": [
                    {"id": "1", "userPrincipalName": "adm-alice@corp.example", "accountEnabled": True,
                     "onPremisesSyncEnabled": True, "createdDateTime": "2024-01-01T00:00:00Z",
                     "signInActivity": {"lastSignInDateTime": "2026-01-01T00:00:00Z",
                                        "lastNonInteractiveSignInDateTime": "2026-03-01T00:00:00Z"}},
                    {"id": "9", "userPrincipalName": "administrator@corp.example", "accountEnabled": True},
                ],
                "@odata.nextLink": f"{GraphClient.GRAPH_BASE_URL}/users?$skiptoken=abc"
            })

        accounts = make_client(handler).list_accounts(PrefixPolicy.from_list(["adm"]))

        assert [a.object_id for a in accounts] == ["1", "2"]
        alice, bob = accounts
        assert alice.synced is True
        assert alice.last_sign_in == datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert bob.enabled is False and bob.synced is False
        assert "startswith(userPrincipalName,'adm-')" in requests[0].url.params["$filter"]
        assert requests[0].headers["Authorization"] == "Bearer token-1"

    def test_no_prefixes_lists_nothing(self):
        def handler(request):
            raise AssertionError("no request expected")

        assert make_client(handler).list_accounts(PrefixPolicy.from_list([])) == []

    def test_server_error_raises_lookup_error(self):
        client = make_client(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(DirectoryLookupError):
            client.list_accounts(PrefixPolicy.from_list(["adm"]))


class TestLookups:

    def test_lookup_account(self):
        def handler(request):
            assert request.url.path.endswith("/users/oid-1")
            return httpx.Response(200, json={"id": "oid-1", "accountEnabled": True, "signInActivity": None})

        entry = make_client(handler).lookup_account("oid-1")

        assert entry.enabled is True
        assert entry.last_sign_in is None

    def test_lookup_missing_raises_not_found(self):
        client = make_client(lambda request: httpx.Response(404, json={"error": {"code": "Request_ResourceNotFound"}}))

        with pytest.raises(AccountNotFoundError):
            client.lookup_account("oid-1")

    def test_transport_error_is_lookup_error(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(DirectoryLookupError):
            make_client(handler).lookup_account("oid-1")

    def test_sponsors(self):
        def handler(request):
            return httpx.Response(200, json={"value": [
                {"id": "s1", "mail": "", "userPrincipalName": "lead@corp.example"},
                {"id": "s2", "mail": "second@corp.example"},
            ]})

        sponsors = make_client(handler).get_sponsors("oid-1")

        assert sponsors[0].mail is None
        assert sponsors[0].user_principal_name == "lead@corp.example"
        assert sponsors[1].mail == "second@corp.example"

    def test_sponsors_missing_object(self):
        assert make_client(lambda request: httpx.Response(404)).get_sponsors("oid-1") == []


class TestMail:

    def test_send_mail_payload(self):
        captured = {}

        def handler(request):
            captured["path"] = request.url.path
            captured["body"] = json.loads(request.content)
            return httpx.Response(202)

        make_client(handler).send_mail("noreply@corp.example", "alice@corp.example", "Subject", "<p>x</p>")

        assert captured["path"].endswith("/users/noreply@corp.example/sendMail")
        message = captured["body"]["message"]
        assert message["toRecipients"][0]["emailAddress"]["address"] == "alice@corp.example"
        assert message["body"]["contentType"] == "HTML"

    def test_rejected_mail_raises_delivery_error(self):
        client = make_client(lambda request: httpx.Response(403, text="ErrorAccessDenied"))

        with pytest.raises(NotificationDeliveryError, match="403"):
            client.send_mail("noreply@corp.example", "alice@corp.example", "Subject", "<p>x</p>")

    def test_transport_failure_raises_delivery_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NotificationDeliveryError):
            make_client(handler).send_mail("noreply@corp.example", "alice@corp.example", "Subject", "x")


class TestActions:

    def test_disable_patches_account_enabled(self):
        captured = {}

        def handler(request):
            captured["method"] = request.method
            captured["body"] = json.loads(request.content)
            return httpx.Response(204)

        make_client(handler).disable_account("oid-1")

        assert captured == {"method": "PATCH", "body": {"accountEnabled": False}}

    def test_delete_failure_raises(self):
        client = make_client(lambda request: httpx.Response(403, text="Authorization_RequestDenied"))

        with pytest.raises(DirectoryLookupError):
            client.delete_account("oid-1")


class TestAuthentication:

    def test_credential_failure_is_connection_error(self):
        credential = FakeCredential(error=ClientAuthenticationError("invalid client secret"))
        client = make_client(lambda request: httpx.Response(200, json={}), credential=credential)

        with pytest.raises(DirectoryConnectionError):
            client.lookup_account("oid-1")

    def test_token_reused_until_near_expiry(self):
        credential = FakeCredential()
        client = make_client(lambda request: httpx.Response(200, json={"accountEnabled": True}), credential)

        client.lookup_account("oid-1")
        client.lookup_account("oid-2")
        assert credential.calls == 1

        client._token_expiry = time.time() + 60
        client.lookup_account("oid-3")
        assert credential.calls == 2
