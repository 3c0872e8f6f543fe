"""Sync engine: per-object operations that converge credentials and references.

Every operation reads the target object, computes the desired state and writes
it back with the resourceVersion it read, so a concurrent writer turns into a
ConflictError instead of a lost update. Each operation is a no-op when the
object already matches, which makes them safe to repeat.
"""
import copy
import logging
from typing import Any, Dict, List
from ..domains.models import (
    Declaration,
    SyncResult,
    credential_name,
    DOCKER_CONFIG_TYPE,
    MANAGED_BY_LABEL,
    MANAGED_BY_VALUE,
    SOURCE_ANNOTATION,
)
from ..domains.kube_client import ConflictError, KubeStore, NotFoundError

logger = logging.getLogger(__name__)


class SecretSync:
    """Creates namespace credentials and manages ServiceAccount references to them."""

    def __init__(self, store: KubeStore, name_suffix: str = "", owner_references: bool = True):
        self.store = store
        self.name_suffix = name_suffix
        self.owner_references = owner_references

    def credential_name(self, declaration_name: str) -> str:
        return credential_name(declaration_name, self.name_suffix)

    def _apply_metadata(self, metadata: Dict[str, Any], declaration: Declaration) -> None:
        labels = metadata.get("labels") or {}
        labels[MANAGED_BY_LABEL] = MANAGED_BY_VALUE
        metadata["labels"] = labels

        annotations = metadata.get("annotations") or {}
        annotations[SOURCE_ANNOTATION] = declaration.name
        metadata["annotations"] = annotations

        owner = declaration.owner_reference() if self.owner_references else None
        if owner is not None:
            owners = metadata.get("ownerReferences") or []
            if not any(ref.get("uid") == owner["uid"] for ref in owners):
                owners.append(owner)
            metadata["ownerReferences"] = owners

    def ensure_credential(self, declaration: Declaration, namespace: str) -> SyncResult:
        """
        Create or update the credential Secret for a declaration in one namespace.

        Returns:
            CREATED, UPDATED or UNCHANGED

        Raises:
            NotFoundError: If the namespace no longer exists
            ConflictError: On a concurrent modification, or when a Secret of
                another type already holds the credential name
        """
        name = self.credential_name(declaration.name)
        data = declaration.secret_data()

        try:
            current = self.store.get_secret(namespace, name)
        except NotFoundError:
            metadata: Dict[str, Any] = {"name": name, "namespace": namespace}
            self._apply_metadata(metadata, declaration)
            body = {
                "apiVersion": "v1",
                "kind": "Secret",
                "metadata": metadata,
                "type": DOCKER_CONFIG_TYPE,
                "data": data,
            }
            self.store.create_secret(namespace, body)
            logger.info(f"Created secret {namespace}/{name}")
            return SyncResult.CREATED

        # Secret type is immutable, so a foreign Secret can't be converted in place
        if current.get("type") != DOCKER_CONFIG_TYPE:
            raise ConflictError(
                f"secret {namespace}/{name} exists with type {current.get('type')}, expected {DOCKER_CONFIG_TYPE}"
            )

        desired = copy.deepcopy(current)
        desired["data"] = data
        desired.pop("stringData", None)
        self._apply_metadata(desired.setdefault("metadata", {}), declaration)

        if desired == current:
            logger.debug(f"Secret {namespace}/{name} is up to date")
            return SyncResult.UNCHANGED

        self.store.replace_secret(namespace, name, desired)
        logger.info(f"Updated secret {namespace}/{name}")
        return SyncResult.UPDATED

    def append_reference(self, declaration: Declaration, namespace: str, service_account: str) -> SyncResult:
        """
        Add the credential to a ServiceAccount's imagePullSecrets.

        Existing entries keep their order; the new entry goes last. Repeated
        entries for the credential collapse into the first one.

        Returns:
            APPENDED, UPDATED (duplicates collapsed) or UNCHANGED

        Raises:
            NotFoundError: If the ServiceAccount is gone
            ConflictError: If the ServiceAccount changed since it was read
        """
        name = self.credential_name(declaration.name)
        account = self.store.get_service_account(namespace, service_account)
        refs: List[Dict[str, Any]] = account.get("imagePullSecrets") or []

        matches = sum(1 for ref in refs if ref.get("name") == name)
        if matches == 1:
            return SyncResult.UNCHANGED

        if matches == 0:
            account["imagePullSecrets"] = refs + [{"name": name}]
            result = SyncResult.APPENDED
        else:
            first = next(i for i, ref in enumerate(refs) if ref.get("name") == name)
            account["imagePullSecrets"] = [
                ref for i, ref in enumerate(refs) if i == first or ref.get("name") != name
            ]
            result = SyncResult.UPDATED

        self.store.replace_service_account(namespace, service_account, account)
        logger.info(f"{result.value.capitalize()} {name} on serviceaccount {namespace}/{service_account}")
        return result

    def remove_reference(self, declaration_name: str, namespace: str, service_account: str) -> SyncResult:
        """
        Drop the credential from a ServiceAccount's imagePullSecrets.

        Raises:
            NotFoundError: If the ServiceAccount is gone
            ConflictError: If the ServiceAccount changed since it was read
        """
        name = self.credential_name(declaration_name)
        account = self.store.get_service_account(namespace, service_account)
        refs: List[Dict[str, Any]] = account.get("imagePullSecrets") or []

        kept = [ref for ref in refs if ref.get("name") != name]
        if len(kept) == len(refs):
            return SyncResult.UNCHANGED

        account["imagePullSecrets"] = kept
        self.store.replace_service_account(namespace, service_account, account)
        logger.info(f"Removed {name} from serviceaccount {namespace}/{service_account}")
        return SyncResult.REMOVED
