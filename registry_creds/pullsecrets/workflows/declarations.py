"""Workflow for turning a ClusterPullSecret object into usable registry material."""
import logging
from typing import Any, Dict, Optional
from ..domains.models import Declaration, DeclarationError
from ..domains.gcp_client import GCPSecretClient

logger = logging.getLogger(__name__)


def load_declaration(obj: Dict[str, Any], gcp_client: Optional[GCPSecretClient] = None) -> Declaration:
    """
    Parse a ClusterPullSecret and resolve any passwords held in GCP Secret Manager.

    Passwords are fetched on every call; nothing is cached between passes.

    Raises:
        DeclarationError: If the spec is invalid or a password secret can't be fetched
    """
    declaration = Declaration.from_object(obj)

    for registry in declaration.registries:
        ref = registry.password_secret
        if ref is None:
            continue

        if gcp_client is None:
            raise DeclarationError(
                f"{declaration.name}: {registry.server} uses passwordSecret but GCP access is not configured"
            )

        project_id = gcp_client.get_project_id(ref.project_id)
        if not project_id:
            raise DeclarationError(
                f"{declaration.name}: no GCP project for passwordSecret {ref.name}; "
                f"set projectId, GCP_PROJECT or gcp.project_id"
            )

        password = gcp_client.fetch_secret(ref.name, project_id, ref.version)
        if password is None:
            raise DeclarationError(
                f"{declaration.name}: passwordSecret {ref.name} could not be fetched from project {project_id}"
            )
        registry.password = password
        logger.debug(f"{declaration.name}: resolved password for {registry.server} from GCP")

    return declaration
