"""
Tests for the Active Directory client with a mocked ldap3 connection.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from ldap3 import MODIFY_REPLACE
from ldap3.core.exceptions import LDAPSocketOpenError

from core.ad_client import ActiveDirectoryClient, TREE_DELETE_CONTROL
from core.exceptions import AccountNotFoundError, DirectoryConnectionError, DirectoryLookupError
from core.prefixes import PrefixPolicy

DN = "CN=adm-alice,OU=Admins,DC=corp,DC=example"


def search_entry(sam="adm-alice", uac=512, **extra):
    attributes = {
        'sAMAccountName': sam,
        'userPrincipalName': f"{sam}@corp.example",
        'userAccountControl': uac,
        'lastLogonTimestamp': datetime(2026, 1, 10, 7, 0, tzinfo=timezone.utc),
        'whenCreated': datetime(2024, 5, 1, tzinfo=timezone.utc),
        'mail': [],
        'description': ['Tier 0 admin'],
        'distinguishedName': DN,
        'extensionAttribute1': 'owner=alice',
    }
    attributes.update(extra)
    return {'type': 'searchResEntry', 'dn': DN, 'attributes': attributes}


@pytest.fixture
def client():
    ad = ActiveDirectoryClient("ldaps://dc01.corp.example", "svc", "secret", "DC=corp,DC=example")
    ad.connection = MagicMock()
    ad.connection.result = {'result': 0, 'description': 'success'}
    ad.connection.response = []
    return ad


class TestLookup:

    def test_maps_attributes(self, client):
        client.connection.response = [search_entry()]

        entry = client.lookup_account("adm-alice")

        assert entry.sam_account_name == "adm-alice"
        assert entry.enabled is True
        assert entry.last_logon == datetime(2026, 1, 10, 7, 0, tzinfo=timezone.utc)
        assert entry.owner_attribute == "owner=alice"
        assert entry.mail is None
        assert entry.description == "Tier 0 admin"
        assert entry.distinguished_name == DN

    def test_disabled_flag(self, client):
        client.connection.response = [search_entry(uac=514)]

        assert client.lookup_account("adm-alice").enabled is False

    def test_filter_escapes_identifier(self, client):
        client.connection.response = [search_entry()]

        client.lookup_account("adm-(alice)")

        search_filter = client.connection.search.call_args.kwargs['search_filter']
        assert "adm-\\28alice\\29" in search_filter

    def test_not_found(self, client):
        with pytest.raises(AccountNotFoundError):
            client.lookup_account("adm-ghost")

    def test_no_such_object_is_not_found(self, client):
        client.connection.result = {'result': 32, 'description': 'noSuchObject'}

        with pytest.raises(AccountNotFoundError):
            client.lookup_account("adm-ghost")

    def test_server_error_is_lookup_error(self, client):
        client.connection.result = {'result': 51, 'description': 'busy'}

        with pytest.raises(DirectoryLookupError, match="busy"):
            client.lookup_account("adm-alice")


class TestListAccounts:

    def test_paged_search_filter(self, client):
        paged_search = client.connection.extend.standard.paged_search
        paged_search.return_value = [search_entry(), {'type': 'searchResRef'}]

        entries = client.list_accounts(PrefixPolicy.from_list(["adm", "t0"]), "OU=Admins,DC=corp,DC=example")

        assert [e.sam_account_name for e in entries] == ["adm-alice"]
        kwargs = paged_search.call_args.kwargs
        assert kwargs['search_base'] == "OU=Admins,DC=corp,DC=example"
        assert "(sAMAccountName=adm-*)" in kwargs['search_filter']
        assert "(sAMAccountName=t0-*)" in kwargs['search_filter']

    def test_defaults_to_base_dn(self, client):
        client.connection.extend.standard.paged_search.return_value = []

        client.list_accounts(PrefixPolicy.from_list(["adm"]))

        assert client.connection.extend.standard.paged_search.call_args.kwargs['search_base'] == "DC=corp,DC=example"


class TestActions:

    def test_disable_sets_flag(self, client):
        client.connection.response = [search_entry(uac=66048)]
        client.connection.modify.return_value = True

        client.disable_account("adm-alice")

        dn, changes = client.connection.modify.call_args.args
        assert dn == DN
        assert changes == {'userAccountControl': [(MODIFY_REPLACE, [66050])]}

    def test_disable_refused(self, client):
        client.connection.response = [search_entry()]

        def refuse(*args, **kwargs):
            client.connection.result = {'result': 50, 'description': 'insufficientAccessRights'}
            return False

        client.connection.modify.side_effect = refuse

        with pytest.raises(DirectoryLookupError, match="insufficientAccessRights"):
            client.disable_account("adm-alice")

    def test_delete_uses_tree_delete(self, client):
        client.connection.response = [search_entry()]
        client.connection.delete.return_value = True

        client.delete_account("adm-alice")

        client.connection.delete.assert_called_once_with(DN, controls=[(TREE_DELETE_CONTROL, True, None)])


def test_connect_failure_raises_connection_error():
    ad = ActiveDirectoryClient("ldaps://dc01.corp.example", "svc", "secret", "DC=corp,DC=example")

    with patch("core.ad_client.Connection", side_effect=LDAPSocketOpenError("unreachable")):
        with pytest.raises(DirectoryConnectionError):
            ad.lookup_account("adm-alice")


def test_context_manager_unbinds(client):
    connection = client.connection

    with client:
        pass

    connection.unbind.assert_called_once()
    assert client.connection is None
