"""
Kubernetes utilities for the pod affinity webhook.

This module provides helper functions for interacting with the Kubernetes API.

Key functionality:
- Kubernetes client management and configuration
- The registration store: reads and writes of the MutatingWebhookConfiguration,
  the certificate secret and the operator's home Namespace
- Owner references and API error classification
"""

import asyncio
import json
import logging
from typing import Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from pod_affinity_webhook.errors import KubernetesAPIError

logger = logging.getLogger(__name__)

# Status codes worth retrying besides 5xx
RETRYABLE_STATUS_CODES = frozenset({404, 409, 429})


def get_kubernetes_client() -> client.ApiClient:
    """
    Get configured Kubernetes API client.

    This function handles both in-cluster and local development configurations.

    Returns:
        Configured Kubernetes API client
    """
    try:
        # Try in-cluster config first (when running in a pod)
        config.load_incluster_config()
        logger.debug("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        try:
            # Fall back to local kubeconfig (for development)
            config.load_kube_config()
            logger.debug("Loaded kubeconfig from local environment")
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes configuration: {e}")
            raise

    return client.ApiClient()


def controller_owner_reference(owner: dict[str, Any]) -> dict[str, Any]:
    """
    Build a controller owner reference pointing at ``owner``.

    Args:
        owner: Owner object as a camelCase document (apiVersion, kind, metadata)

    Returns:
        Owner reference with controller and blockOwnerDeletion set
    """
    metadata = owner.get("metadata") or {}
    return {
        "apiVersion": owner.get("apiVersion", "v1"),
        "kind": owner.get("kind", "Namespace"),
        "name": metadata.get("name"),
        "uid": metadata.get("uid"),
        "controller": True,
        "blockOwnerDeletion": True,
    }


def _status_reason(error: ApiException) -> str | None:
    """Reason from the Status body the API server returns, else the HTTP reason."""
    try:
        body = json.loads(error.body) if error.body else {}
    except (TypeError, ValueError):
        body = {}
    if isinstance(body, dict) and body.get("reason"):
        return body["reason"]
    return error.reason


def wrap_api_exception(action: str, error: ApiException) -> KubernetesAPIError:
    """
    Convert an ApiException into a KubernetesAPIError with context.

    Server errors, conflicts, throttling and not-found are retryable;
    Forbidden, Unauthorized and Invalid are not.
    """
    status = error.status
    retryable = status is None or status >= 500 or status in RETRYABLE_STATUS_CODES
    return KubernetesAPIError(
        f"Failed to {action} (HTTP {status})",
        reason=_status_reason(error),
        retryable=retryable,
        cause=error,
    )


class KubernetesRegistrationStore:
    """
    Registration store backed by the Kubernetes API.

    The client is synchronous; every call runs in a worker thread so the
    kopf event loop stays responsive. Results are camelCase documents.
    """

    def __init__(self, api_client: client.ApiClient | None = None):
        self.api_client = api_client or client.ApiClient()
        self.admission_api = client.AdmissionregistrationV1Api(self.api_client)
        self.core_api = client.CoreV1Api(self.api_client)

    def _to_document(self, obj: Any) -> dict[str, Any]:
        return self.api_client.sanitize_for_serialization(obj)

    async def _call(self, action: str, func, *args, **kwargs) -> dict[str, Any]:
        try:
            result = await asyncio.to_thread(func, *args, **kwargs)
        except ApiException as e:
            raise wrap_api_exception(action, e) from e
        return self._to_document(result)

    async def get_registration(self, name: str) -> dict[str, Any]:
        """Read the MutatingWebhookConfiguration ``name``."""
        return await self._call(
            f"read MutatingWebhookConfiguration {name}",
            self.admission_api.read_mutating_webhook_configuration,
            name,
        )

    async def replace_registration(
        self, name: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        """Replace the MutatingWebhookConfiguration ``name`` with ``body``."""
        logger.debug(f"Replacing MutatingWebhookConfiguration {name}")
        return await self._call(
            f"update MutatingWebhookConfiguration {name}",
            self.admission_api.replace_mutating_webhook_configuration,
            name,
            body,
        )

    async def get_secret(self, namespace: str, name: str) -> dict[str, Any]:
        return await self._call(
            f"read secret {namespace}/{name}",
            self.core_api.read_namespaced_secret,
            name,
            namespace,
        )

    async def get_namespace(self, name: str) -> dict[str, Any]:
        return await self._call(
            f"read namespace {name}",
            self.core_api.read_namespace,
            name,
        )
