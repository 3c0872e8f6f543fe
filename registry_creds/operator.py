"""Kopf handlers that trigger ClusterPullSecret convergence passes."""
import logging
from typing import Any, Dict

import kopf

from registry_creds.pullsecrets.domains.config_loader import load_config
from registry_creds.pullsecrets.domains.kube_client import StoreError
from registry_creds.pullsecrets.domains.models import API_GROUP, API_VERSION, PLURAL
from registry_creds.pullsecrets.workflows.reconcile import ClusterPullSecretReconciler

logger = logging.getLogger(__name__)

FINALIZER = "registry-creds.io/finalizer"


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, memo: kopf.Memo, **_: Any) -> None:
    """Build the reconciler once, unless the caller already placed one on the memo."""
    settings.posting.level = logging.WARNING
    settings.persistence.finalizer = FINALIZER

    if "reconciler" not in memo:
        memo.config = load_config()
        memo.reconciler = ClusterPullSecretReconciler.from_config(memo.config)

    logger.info("registry-creds operator started")


@kopf.on.cleanup()
def cleanup(**_: Any) -> None:
    logger.info("registry-creds operator shutting down")


def run_pass(memo: kopf.Memo, name: str) -> Dict[str, Any]:
    """
    Run one pass and translate its outcome for kopf.

    The returned summary is stored by kopf on the object's status.

    Raises:
        kopf.TemporaryError: If the pass asked to be requeued or listing failed
    """
    reconciler: ClusterPullSecretReconciler = memo.reconciler
    try:
        outcome = reconciler.reconcile(name)
    except StoreError as e:
        raise kopf.TemporaryError(f"Convergence of {name} failed: {e}", delay=reconciler.requeue_delay)

    if outcome.requeue:
        reason = outcome.skipped or f"{outcome.failed} objects failed to sync"
        raise kopf.TemporaryError(f"{name}: {reason}", delay=outcome.requeue_after)

    return outcome.summary()


@kopf.on.create(API_GROUP, API_VERSION, PLURAL)
@kopf.on.update(API_GROUP, API_VERSION, PLURAL)
@kopf.on.resume(API_GROUP, API_VERSION, PLURAL)
def converge(name: str, memo: kopf.Memo, **_: Any) -> Dict[str, Any]:
    logger.info(f"Reconciling ClusterPullSecret {name}")
    return run_pass(memo, name)


@kopf.on.delete(API_GROUP, API_VERSION, PLURAL)
def teardown(name: str, memo: kopf.Memo, **_: Any) -> None:
    # The object still exists here; the reconciler sees its deletionTimestamp
    logger.info(f"ClusterPullSecret {name} deleted")
    run_pass(memo, name)


def watching_new_objects(memo: kopf.Memo, **_: Any) -> bool:
    config = memo.get("config") or {}
    return bool(config.get("reconcile", {}).get("watch_new_objects"))


@kopf.on.event("namespaces", when=watching_new_objects)
@kopf.on.event("serviceaccounts", when=watching_new_objects)
def resync_on_create(event: Dict[str, Any], memo: kopf.Memo, **_: Any) -> None:
    """Re-run every declaration when a namespace or service account appears."""
    # Initial listing events carry no type; only genuine additions count
    if event.get("type") != "ADDED":
        return

    reconciler: ClusterPullSecretReconciler = memo.reconciler
    try:
        declarations = reconciler.store.list_cluster_pull_secrets()
    except StoreError as e:
        logger.warning(f"Unable to list ClusterPullSecrets: {e}")
        return

    for obj in declarations:
        name = obj["metadata"]["name"]
        try:
            reconciler.reconcile(name)
        except StoreError as e:
            logger.warning(f"Convergence of {name} failed: {e}")
