"""Kubernetes object store wrapper."""
import logging
from typing import Any, Callable, Dict, List, Optional

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from .models import API_GROUP, API_VERSION, PLURAL

logger = logging.getLogger(__name__)

PAGE_SIZE = 500


class StoreError(Exception):
    """Base class for object store failures."""
    kind = "Error"


class NotFoundError(StoreError):
    """Target namespace, identity or declaration is absent."""
    kind = "NotFound"


class ConflictError(StoreError):
    """Concurrent modification detected on write."""
    kind = "Conflict"


class TransientIOError(StoreError):
    """Listing, read or write transport failure."""
    kind = "TransientIO"


def _translate(exc: Exception, action: str) -> StoreError:
    if isinstance(exc, ApiException):
        message = f"{action}: {exc.status} {exc.reason}"
        if exc.status == 404:
            return NotFoundError(message)
        if exc.status == 409:
            return ConflictError(message)
        return TransientIOError(message)
    return TransientIOError(f"{action}: {exc}")


class KubeStore:
    """
    Object store backed by the Kubernetes API.

    Objects go in and come out as plain dicts using the API's own (camelCase)
    field names, so callers never handle generated client models.
    """

    def __init__(
        self,
        core_api: Optional[client.CoreV1Api] = None,
        custom_api: Optional[client.CustomObjectsApi] = None,
        kubeconfig: Optional[str] = None,
        context: Optional[str] = None,
    ):
        self._core = core_api
        self._custom = custom_api
        self._kubeconfig = kubeconfig
        self._context = context
        self._configured = core_api is not None and custom_api is not None
        self._api_client = client.ApiClient() if core_api or custom_api else None

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "KubeStore":
        kube = cfg.get("kubernetes") or {}
        return cls(kubeconfig=kube.get("kubeconfig"), context=kube.get("context"))

    def _configure(self) -> None:
        """Load in-cluster config, falling back to a kubeconfig file."""
        if self._configured:
            return
        try:
            config.load_incluster_config()
            logger.info("Using in-cluster Kubernetes configuration")
        except config.ConfigException:
            logger.info("In-cluster configuration unavailable, loading kubeconfig")
            config.load_kube_config(config_file=self._kubeconfig, context=self._context)
        self._api_client = client.ApiClient()
        self._configured = True

    @property
    def core(self) -> client.CoreV1Api:
        """Lazy-initialize the core API."""
        if self._core is None:
            self._configure()
            self._core = client.CoreV1Api(self._api_client)
        return self._core

    @property
    def custom(self) -> client.CustomObjectsApi:
        """Lazy-initialize the custom objects API."""
        if self._custom is None:
            self._configure()
            self._custom = client.CustomObjectsApi(self._api_client)
        return self._custom

    def _call(self, action: str, fn: Callable[..., Any], *args, **kwargs) -> Dict[str, Any]:
        try:
            result = fn(*args, **kwargs)
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            raise _translate(e, action) from e
        return self._api_client.sanitize_for_serialization(result)

    def _paginate(self, action: str, fn: Callable[..., Any], **kwargs) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        token = None
        while True:
            if token:
                kwargs["_continue"] = token
            page = self._call(action, fn, limit=PAGE_SIZE, **kwargs)
            items.extend(page.get("items") or [])
            token = (page.get("metadata") or {}).get("continue")
            if not token:
                return items

    # ClusterPullSecret declarations

    def get_cluster_pull_secret(self, name: str) -> Dict[str, Any]:
        return self._call(
            f"get clusterpullsecret {name}",
            self.custom.get_cluster_custom_object,
            API_GROUP, API_VERSION, PLURAL, name,
        )

    def list_cluster_pull_secrets(self) -> List[Dict[str, Any]]:
        return self._paginate(
            "list clusterpullsecrets",
            self.custom.list_cluster_custom_object,
            group=API_GROUP, version=API_VERSION, plural=PLURAL,
        )

    # Namespaces and service accounts

    def list_namespaces(self) -> List[Dict[str, Any]]:
        return self._paginate("list namespaces", self.core.list_namespace)

    def list_service_accounts(self) -> List[Dict[str, Any]]:
        return self._paginate("list serviceaccounts", self.core.list_service_account_for_all_namespaces)

    def get_service_account(self, namespace: str, name: str) -> Dict[str, Any]:
        return self._call(
            f"get serviceaccount {namespace}/{name}",
            self.core.read_namespaced_service_account, name, namespace,
        )

    def replace_service_account(self, namespace: str, name: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return self._call(
            f"update serviceaccount {namespace}/{name}",
            self.core.replace_namespaced_service_account, name, namespace, body,
        )

    # Secrets

    def get_secret(self, namespace: str, name: str) -> Dict[str, Any]:
        return self._call(
            f"get secret {namespace}/{name}",
            self.core.read_namespaced_secret, name, namespace,
        )

    def create_secret(self, namespace: str, body: Dict[str, Any]) -> Dict[str, Any]:
        name = body["metadata"]["name"]
        return self._call(
            f"create secret {namespace}/{name}",
            self.core.create_namespaced_secret, namespace, body,
        )

    def replace_secret(self, namespace: str, name: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return self._call(
            f"update secret {namespace}/{name}",
            self.core.replace_namespaced_secret, name, namespace, body,
        )
