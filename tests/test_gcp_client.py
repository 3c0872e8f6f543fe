"""Tests for GCP-backed registry passwords."""
from unittest import mock

import pytest

from registry_creds.pullsecrets.domains.gcp_client import GCPSecretClient
from registry_creds.pullsecrets.domains.models import DeclarationError
from registry_creds.pullsecrets.workflows.declarations import load_declaration


def _gar_declaration(**password_secret):
    return {
        "metadata": {"name": "gar"},
        "spec": {
            "registry": {
                "server": "europe-docker.pkg.dev",
                "username": "_json_key",
                "passwordSecret": {"name": "gar-key", **password_secret},
            }
        },
    }


class TestGCPSecretClient:
    """Test suite for the GCP Secret Manager wrapper."""

    def test_project_from_entry_wins(self, monkeypatch):
        monkeypatch.setenv("GCP_PROJECT", "from-env")
        assert GCPSecretClient("from-config").get_project_id("from-entry") == "from-entry"

    def test_project_from_env(self, monkeypatch):
        monkeypatch.setenv("GCP_PROJECT", "from-env")
        assert GCPSecretClient("from-config").get_project_id() == "from-env"

    def test_project_from_config(self, monkeypatch):
        monkeypatch.delenv("GCP_PROJECT", raising=False)
        assert GCPSecretClient("from-config").get_project_id() == "from-config"

    @mock.patch("registry_creds.pullsecrets.domains.gcp_client.secretmanager")
    def test_fetch_secret(self, secretmanager):
        api = secretmanager.SecretManagerServiceClient.return_value
        api.access_secret_version.return_value.payload.data = b"hunter2"

        value = GCPSecretClient().fetch_secret("gar-key", "acme", "3")

        assert value == "hunter2"
        api.access_secret_version.assert_called_once_with(
            request={"name": "projects/acme/secrets/gar-key/versions/3"}
        )

    @mock.patch("registry_creds.pullsecrets.domains.gcp_client.secretmanager")
    def test_fetch_failure_returns_none(self, secretmanager):
        api = secretmanager.SecretManagerServiceClient.return_value
        api.access_secret_version.side_effect = RuntimeError("permission denied")

        assert GCPSecretClient().fetch_secret("gar-key", "acme") is None


class TestLoadDeclaration:
    """Test suite for password resolution while loading declarations."""

    def test_resolves_password(self):
        gcp = mock.Mock(spec=GCPSecretClient)
        gcp.get_project_id.return_value = "acme"
        gcp.fetch_secret.return_value = "hunter2"

        declaration = load_declaration(_gar_declaration(projectId="acme", version="2"), gcp)

        gcp.get_project_id.assert_called_once_with("acme")
        gcp.fetch_secret.assert_called_once_with("gar-key", "acme", "2")
        assert declaration.registries[0].password == "hunter2"

    def test_without_gcp_client(self):
        with pytest.raises(DeclarationError, match="GCP access is not configured"):
            load_declaration(_gar_declaration())

    def test_without_project(self):
        gcp = mock.Mock(spec=GCPSecretClient)
        gcp.get_project_id.return_value = None

        with pytest.raises(DeclarationError, match="no GCP project"):
            load_declaration(_gar_declaration(), gcp)

    def test_inline_password_needs_no_gcp(self, registry_spec):
        declaration = load_declaration({"metadata": {"name": "regcred"}, "spec": registry_spec})
        assert declaration.registries[0].password == "s3cret"

    def test_password_and_secret_conflict(self):
        obj = _gar_declaration()
        obj["spec"]["registry"]["password"] = "inline"

        with pytest.raises(DeclarationError, match="both password and passwordSecret"):
            load_declaration(obj)
