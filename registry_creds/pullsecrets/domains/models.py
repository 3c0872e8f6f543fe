"""Domain models for cluster pull secret propagation."""
import base64
import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

API_GROUP = "ops.alexellis.io"
API_VERSION = "v1"
PLURAL = "clusterpullsecrets"
KIND = "ClusterPullSecret"

DOCKER_CONFIG_TYPE = "kubernetes.io/dockerconfigjson"
DOCKER_CONFIG_KEY = ".dockerconfigjson"

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "registry-creds"
SOURCE_ANNOTATION = "registry-creds.io/cluster-pull-secret"

# Username GCR/Artifact Registry expect alongside an access token
TOKEN_USERNAME = "oauth2accesstoken"


class DeclarationError(ValueError):
    """A ClusterPullSecret whose registry material cannot be used."""
    pass


def credential_name(declaration_name: str, suffix: str = "") -> str:
    """Name of the namespace-local Secret derived from a declaration."""
    return f"{declaration_name}{suffix}"


@dataclass
class PasswordSecretRef:
    """Pointer to a GCP Secret Manager secret holding a registry password."""
    name: str
    project_id: Optional[str] = None
    version: str = "latest"


@dataclass
class RegistryAuth:
    """Credential material for a single registry server."""
    server: str
    username: Optional[str] = None
    password: Optional[str] = None
    email: Optional[str] = None
    password_secret: Optional[PasswordSecretRef] = None

    @classmethod
    def from_spec(cls, entry: Dict[str, Any], where: str) -> "RegistryAuth":
        if not isinstance(entry, dict):
            raise DeclarationError(f"{where} must be a mapping")

        server = entry.get("server")
        if not server:
            raise DeclarationError(f"{where}.server is required")

        password = entry.get("password")
        token = entry.get("token")
        if password and token:
            raise DeclarationError(f"{where} sets both password and token")

        username = entry.get("username")
        if token:
            password = token
            username = username or TOKEN_USERNAME

        ref = None
        secret_spec = entry.get("passwordSecret")
        if secret_spec:
            if password:
                raise DeclarationError(f"{where} sets both password and passwordSecret")
            if not isinstance(secret_spec, dict) or not secret_spec.get("name"):
                raise DeclarationError(f"{where}.passwordSecret.name is required")
            ref = PasswordSecretRef(
                name=secret_spec["name"],
                project_id=secret_spec.get("projectId"),
                version=str(secret_spec.get("version", "latest")),
            )

        return cls(
            server=server,
            username=username,
            password=password,
            email=entry.get("email"),
            password_secret=ref,
        )

    def to_docker_auth(self) -> Dict[str, str]:
        if self.password_secret is not None and self.password is None:
            raise DeclarationError(
                f"Password for {self.server} has not been resolved from {self.password_secret.name}"
            )

        auth: Dict[str, str] = {}
        if self.username:
            auth["username"] = self.username
        if self.password:
            auth["password"] = self.password
        if self.email:
            auth["email"] = self.email
        if self.username and self.password:
            raw = f"{self.username}:{self.password}".encode("utf-8")
            auth["auth"] = base64.b64encode(raw).decode("ascii")
        return auth


@dataclass
class Declaration:
    """A cluster-scoped ClusterPullSecret as seen by the sync engine."""
    name: str
    registries: List[RegistryAuth]
    uid: Optional[str] = None

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "Declaration":
        """
        Build a Declaration from a ClusterPullSecret object.

        Registry material is read from ``spec.registry`` followed by every entry
        of ``spec.registries``.

        Raises:
            DeclarationError: If the spec carries no usable registry entry
        """
        metadata = obj.get("metadata") or {}
        name = metadata.get("name")
        if not name:
            raise DeclarationError("ClusterPullSecret has no metadata.name")

        spec = obj.get("spec") or {}
        registries = []
        if spec.get("registry") is not None:
            registries.append(RegistryAuth.from_spec(spec["registry"], "spec.registry"))

        extra = spec.get("registries") or []
        if not isinstance(extra, list):
            raise DeclarationError("spec.registries must be a list")
        for index, entry in enumerate(extra):
            registries.append(RegistryAuth.from_spec(entry, f"spec.registries[{index}]"))

        if not registries:
            raise DeclarationError(f"ClusterPullSecret {name} declares no registry")

        return cls(
            name=name,
            registries=registries,
            uid=metadata.get("uid"),
        )

    def docker_config(self) -> Dict[str, Any]:
        auths: Dict[str, Dict[str, str]] = {}
        for registry in self.registries:
            if registry.server in auths:
                logger.warning(f"{self.name}: registry {registry.server} declared twice, keeping the last entry")
            auths[registry.server] = registry.to_docker_auth()
        return {"auths": auths}

    def secret_data(self) -> Dict[str, str]:
        """Base64 encoded Secret data; stable for equal material."""
        payload = json.dumps(self.docker_config(), sort_keys=True, separators=(",", ":"))
        return {DOCKER_CONFIG_KEY: base64.b64encode(payload.encode("utf-8")).decode("ascii")}

    def owner_reference(self) -> Optional[Dict[str, Any]]:
        if not self.uid:
            return None
        return {
            "apiVersion": f"{API_GROUP}/{API_VERSION}",
            "kind": KIND,
            "name": self.name,
            "uid": self.uid,
        }


class SyncResult(str, Enum):
    """Outcome of a single sync engine operation."""
    CREATED = "created"
    UPDATED = "updated"
    APPENDED = "appended"
    REMOVED = "removed"
    UNCHANGED = "unchanged"


@dataclass
class PassOutcome:
    """Aggregated result of one convergence pass."""
    name: str
    present: bool = False
    skipped: Optional[str] = None
    results: Counter = field(default_factory=Counter)
    failures: Counter = field(default_factory=Counter)
    requeue: bool = False
    requeue_after: Optional[int] = None

    @property
    def failed(self) -> int:
        return sum(self.failures.values())

    def record(self, result: SyncResult) -> None:
        self.results[result.value] += 1

    def record_failure(self, kind: str) -> None:
        self.failures[kind] += 1

    def summary(self) -> Dict[str, Any]:
        summary: Dict[str, Any] = {
            "declaration": self.name,
            "present": self.present,
            "results": dict(self.results),
            "failures": dict(self.failures),
        }
        if self.skipped:
            summary["skipped"] = self.skipped
        if self.requeue:
            summary["requeueAfter"] = self.requeue_after
        return summary
