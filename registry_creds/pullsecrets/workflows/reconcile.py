"""Convergence pass for a single ClusterPullSecret."""
import logging
from typing import Any, Callable, Dict, Optional
from ..domains.models import Declaration, DeclarationError, PassOutcome, SyncResult
from ..domains.kube_client import KubeStore, NotFoundError, StoreError
from ..domains.gcp_client import GCPSecretClient
from .declarations import load_declaration
from .secret_sync import SecretSync

logger = logging.getLogger(__name__)


class ClusterPullSecretReconciler:
    """
    Runs one convergence pass per call.

    A present declaration gets its credential written to every namespace and
    referenced from every ServiceAccount; an absent one has its reference
    removed from every ServiceAccount. Failures on individual objects are
    logged and counted on the returned PassOutcome, never raised, so one bad
    namespace cannot hold back the rest of the cluster.
    """

    def __init__(
        self,
        store: KubeStore,
        sync: SecretSync,
        gcp_client: Optional[GCPSecretClient] = None,
        requeue_on_failure: bool = False,
        requeue_delay: int = 30,
    ):
        self.store = store
        self.sync = sync
        self.gcp_client = gcp_client
        self.requeue_on_failure = requeue_on_failure
        self.requeue_delay = requeue_delay

    @classmethod
    def from_config(cls, config: Dict[str, Any], store: Optional[KubeStore] = None) -> "ClusterPullSecretReconciler":
        store = store or KubeStore.from_config(config)
        credentials = config["credentials"]
        reconcile = config["reconcile"]
        return cls(
            store=store,
            sync=SecretSync(
                store,
                name_suffix=credentials["name_suffix"],
                owner_references=credentials["owner_references"],
            ),
            gcp_client=GCPSecretClient(default_project_id=config["gcp"]["project_id"]),
            requeue_on_failure=reconcile["requeue_on_failure"],
            requeue_delay=reconcile["requeue_delay"],
        )

    def reconcile(self, name: str) -> PassOutcome:
        """
        Converge the cluster towards the current state of one ClusterPullSecret.

        Any failure to fetch the declaration, not only NotFound, is treated as
        the declaration being gone and starts a teardown.

        Raises:
            StoreError: If namespaces or service accounts can't be listed
        """
        outcome = PassOutcome(name=name)

        try:
            obj = self.store.get_cluster_pull_secret(name)
        except NotFoundError:
            logger.info(f"ClusterPullSecret {name} not found, removing references")
            self._teardown(name, outcome)
            return self._finish(outcome)
        except StoreError as e:
            logger.warning(f"Unable to fetch ClusterPullSecret {name} ({e.kind}: {e}), treating it as removed")
            self._teardown(name, outcome)
            return self._finish(outcome)

        if (obj.get("metadata") or {}).get("deletionTimestamp"):
            logger.info(f"ClusterPullSecret {name} is being deleted, removing references")
            self._teardown(name, outcome)
            return self._finish(outcome)

        outcome.present = True
        try:
            declaration = load_declaration(obj, self.gcp_client)
        except DeclarationError as e:
            logger.error(f"Skipping ClusterPullSecret {name}: {e}")
            outcome.skipped = str(e)
            return self._finish(outcome)

        logger.info(f"Found: {declaration.name}")
        self._converge(declaration, outcome)
        return self._finish(outcome)

    def _converge(self, declaration: Declaration, outcome: PassOutcome) -> None:
        namespaces = self.store.list_namespaces()
        logger.info(f"Found {len(namespaces)} namespaces")
        for namespace in namespaces:
            namespace_name = namespace["metadata"]["name"]
            self._apply(
                outcome, f"namespace {namespace_name}",
                self.sync.ensure_credential, declaration, namespace_name,
            )

        service_accounts = self.store.list_service_accounts()
        logger.info(f"Found {len(service_accounts)} service accounts")
        for account in service_accounts:
            namespace_name = account["metadata"]["namespace"]
            account_name = account["metadata"]["name"]
            self._apply(
                outcome, f"service account {namespace_name}/{account_name}",
                self.sync.append_reference, declaration, namespace_name, account_name,
            )

    def _teardown(self, name: str, outcome: PassOutcome) -> None:
        service_accounts = self.store.list_service_accounts()
        logger.info(f"Found {len(service_accounts)} service accounts")
        for account in service_accounts:
            namespace_name = account["metadata"]["namespace"]
            account_name = account["metadata"]["name"]
            logger.debug(f"Reconciling service account: {namespace_name}/{account_name}")
            self._apply(
                outcome, f"service account {namespace_name}/{account_name}",
                self.sync.remove_reference, name, namespace_name, account_name,
            )

    def _apply(self, outcome: PassOutcome, target: str, operation: Callable[..., SyncResult], *args) -> None:
        try:
            outcome.record(operation(*args))
        except StoreError as e:
            outcome.record_failure(e.kind)
            logger.warning(f"Found error on {target}: {e.kind}: {e}")

    def _finish(self, outcome: PassOutcome) -> PassOutcome:
        if self.requeue_on_failure and (outcome.failed or outcome.skipped):
            outcome.requeue = True
            outcome.requeue_after = self.requeue_delay

        logger.info(
            f"ClusterPullSecret {outcome.name}: results={dict(outcome.results)} "
            f"failures={dict(outcome.failures)}"
        )
        return outcome
