"""GCP Secret Manager client wrapper for registry passwords."""
import os
import logging
from typing import Optional
from google.cloud import secretmanager

logger = logging.getLogger(__name__)


class GCPSecretClient:
    """Wrapper around GCP Secret Manager client."""

    def __init__(self, default_project_id: Optional[str] = None):
        self._client = None
        self.default_project_id = default_project_id

    @property
    def client(self) -> secretmanager.SecretManagerServiceClient:
        """Lazy-initialize client."""
        if self._client is None:
            self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    def get_project_id(self, project_id: Optional[str] = None) -> Optional[str]:
        """
        Resolve the GCP project a password secret lives in.

        Priority order:
        1. Project named on the declaration entry
        2. GCP_PROJECT environment variable
        3. gcp.project_id from the operator config

        Returns:
            Project ID string, or None if not found
        """
        if project_id:
            return project_id

        gcp_project_env = os.getenv("GCP_PROJECT")
        if gcp_project_env:
            logger.debug(f"Using GCP_PROJECT from environment: {gcp_project_env}")
            return gcp_project_env

        return self.default_project_id

    def fetch_secret(self, secret_name: str, project_id: str, version: str = "latest") -> Optional[str]:
        """
        Fetch secret from GCP Secret Manager.

        Args:
            secret_name: Name of the secret
            project_id: GCP project ID
            version: Secret version, "latest" by default

        Returns:
            Secret value or None if fetch fails
        """
        try:
            name = f"projects/{project_id}/secrets/{secret_name}/versions/{version}"
            response = self.client.access_secret_version(request={"name": name})
            return response.payload.data.decode("UTF-8")
        except Exception as e:
            logger.warning(f"GCP fetch failed for {secret_name}: {e}")
            return None
