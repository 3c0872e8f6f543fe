"""Shared fixtures: an in-memory object store with resourceVersion checks."""
import copy

import pytest

from registry_creds.pullsecrets.domains.kube_client import ConflictError, NotFoundError


class FakeStore:
    """Stands in for KubeStore; every write bumps the object's resourceVersion."""

    def __init__(self):
        self.declarations = {}
        self.namespaces = {}
        self.secrets = {}
        self.service_accounts = {}
        self.failures = {}
        self.writes = []
        self._version = 0

    # Test helpers

    def _stamp(self, obj):
        self._version += 1
        obj.setdefault("metadata", {})["resourceVersion"] = str(self._version)
        return obj

    def fail_on(self, method, key, error):
        """Make `method` raise `error` for `key` ("ns" or "ns/name")."""
        self.failures[(method, key)] = error

    def _check(self, method, key):
        error = self.failures.get((method, key))
        if error is not None:
            raise error

    def add_namespace(self, name):
        self.namespaces[name] = self._stamp({"metadata": {"name": name}})

    def add_service_account(self, namespace, name, pull_secrets=()):
        account = {"metadata": {"name": name, "namespace": namespace}}
        if pull_secrets:
            account["imagePullSecrets"] = [{"name": secret} for secret in pull_secrets]
        self.service_accounts[(namespace, name)] = self._stamp(account)

    def add_declaration(self, name, spec, uid="uid-1", deleting=False):
        obj = {
            "apiVersion": "ops.alexellis.io/v1",
            "kind": "ClusterPullSecret",
            "metadata": {"name": name, "uid": uid},
            "spec": spec,
        }
        if deleting:
            obj["metadata"]["deletionTimestamp"] = "2026-01-01T00:00:00Z"
        self.declarations[name] = self._stamp(obj)

    def pull_secret_names(self, namespace, name):
        account = self.service_accounts[(namespace, name)]
        return [ref["name"] for ref in account.get("imagePullSecrets") or []]

    def touch_service_account(self, namespace, name, secret):
        """Simulate another writer adding a reference."""
        account = self.service_accounts[(namespace, name)]
        account.setdefault("imagePullSecrets", []).append({"name": secret})
        self._stamp(account)

    # Store interface

    def get_cluster_pull_secret(self, name):
        self._check("get_cluster_pull_secret", name)
        if name not in self.declarations:
            raise NotFoundError(f"clusterpullsecret {name} not found")
        return copy.deepcopy(self.declarations[name])

    def list_cluster_pull_secrets(self):
        return [copy.deepcopy(obj) for obj in self.declarations.values()]

    def list_namespaces(self):
        self._check("list_namespaces", None)
        return [copy.deepcopy(obj) for obj in self.namespaces.values()]

    def list_service_accounts(self):
        self._check("list_service_accounts", None)
        return [copy.deepcopy(obj) for obj in self.service_accounts.values()]

    def get_secret(self, namespace, name):
        self._check("get_secret", namespace)
        if (namespace, name) not in self.secrets:
            raise NotFoundError(f"secret {namespace}/{name} not found")
        return copy.deepcopy(self.secrets[(namespace, name)])

    def create_secret(self, namespace, body):
        self._check("create_secret", namespace)
        name = body["metadata"]["name"]
        if namespace not in self.namespaces:
            raise NotFoundError(f"namespace {namespace} not found")
        if (namespace, name) in self.secrets:
            raise ConflictError(f"secret {namespace}/{name} already exists")
        stored = self._stamp(copy.deepcopy(body))
        self.secrets[(namespace, name)] = stored
        self.writes.append(("create_secret", namespace, name))
        return copy.deepcopy(stored)

    def replace_secret(self, namespace, name, body):
        self._check("replace_secret", namespace)
        self._replace(self.secrets, (namespace, name), body)
        self.writes.append(("replace_secret", namespace, name))

    def get_service_account(self, namespace, name):
        self._check("get_service_account", f"{namespace}/{name}")
        if (namespace, name) not in self.service_accounts:
            raise NotFoundError(f"serviceaccount {namespace}/{name} not found")
        return copy.deepcopy(self.service_accounts[(namespace, name)])

    def replace_service_account(self, namespace, name, body):
        self._check("replace_service_account", f"{namespace}/{name}")
        self._replace(self.service_accounts, (namespace, name), body)
        self.writes.append(("replace_service_account", namespace, name))

    def _replace(self, objects, key, body):
        if key not in objects:
            raise NotFoundError(f"{key[0]}/{key[1]} not found")
        current = objects[key]["metadata"]["resourceVersion"]
        if body["metadata"].get("resourceVersion") != current:
            raise ConflictError(f"{key[0]}/{key[1]} was modified, resourceVersion {current}")
        objects[key] = self._stamp(copy.deepcopy(body))
        return copy.deepcopy(objects[key])


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def registry_spec():
    return {
        "registry": {
            "server": "https://index.docker.io/v1/",
            "username": "builder",
            "password": "s3cret",
            "email": "builder@example.com",
        }
    }


@pytest.fixture
def cluster(store, registry_spec):
    """Two namespaces with a default service account each and a regcred declaration."""
    for namespace in ("default", "kube-system"):
        store.add_namespace(namespace)
        store.add_service_account(namespace, "default")
    store.add_declaration("regcred", registry_spec)
    return store
