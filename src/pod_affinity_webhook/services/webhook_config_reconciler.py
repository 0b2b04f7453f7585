"""
Reconciler for the MutatingWebhookConfiguration that routes pod creations
to the admission webhook.

A pass reads the certificate secret, the observed registration and the
operator's home Namespace, builds the desired registration and writes it
back only when it differs. Only the leader replica writes.
"""

import asyncio
import time
from collections.abc import Awaitable
from enum import Enum
from typing import Any, Protocol, TypeVar

from pod_affinity_webhook.constants import CA_CERT_KEY, DEFAULT_RECONCILIATION_TIMEOUT
from pod_affinity_webhook.errors import ConfigurationError, TemporaryError
from pod_affinity_webhook.observability.leader_election import LeadershipOracle
from pod_affinity_webhook.observability.logging import OperatorLogger
from pod_affinity_webhook.observability.metrics import (
    MetricsCollector,
    metrics_collector,
)
from pod_affinity_webhook.services.desired_state import (
    DesiredRegistrationBuilder,
    semantic_equal,
)

T = TypeVar("T")


class ReconcileOutcome(str, Enum):
    """Result of one reconcile pass."""

    SKIPPED = "skipped"
    UNCHANGED = "unchanged"
    UPDATED = "updated"


class RegistrationStore(Protocol):
    """Reads and writes the objects a reconcile pass works with."""

    async def get_registration(self, name: str) -> dict[str, Any]: ...

    async def replace_registration(
        self, name: str, body: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def get_secret(self, namespace: str, name: str) -> dict[str, Any]: ...

    async def get_namespace(self, name: str) -> dict[str, Any]: ...


class WebhookConfigReconciler:
    """Converges the observed registration toward its desired form."""

    resource_type = "mutatingwebhookconfiguration"

    def __init__(
        self,
        store: RegistrationStore,
        leadership: LeadershipOracle,
        builder: DesiredRegistrationBuilder,
        system_namespace: str,
        secret_name: str,
        ca_cert_key: str = CA_CERT_KEY,
        timeout: float = DEFAULT_RECONCILIATION_TIMEOUT,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the reconciler.

        Args:
            store: Access to the registration, secret and namespace
            leadership: Oracle deciding whether this replica may write
            builder: Computes the desired registration
            system_namespace: Home namespace of the operator; owns the
                registration and holds the certificate secret
            secret_name: Name of the certificate secret
            ca_cert_key: Key of the CA certificate in the secret
            timeout: Deadline in seconds for each read or write
            metrics: Metrics collector, defaults to the global one
        """
        self.store = store
        self.leadership = leadership
        self.builder = builder
        self.system_namespace = system_namespace
        self.secret_name = secret_name
        self.ca_cert_key = ca_cert_key
        self.timeout = timeout
        self.metrics = metrics or metrics_collector
        self.logger = OperatorLogger(__name__)

    async def _bounded(self, action: str, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except TimeoutError as e:
            raise TemporaryError(
                f"Timed out after {self.timeout}s while trying to {action}",
                delay=5,
            ) from e

    async def _read_certificate_bundle(self) -> str:
        secret = await self._bounded(
            f"read secret {self.system_namespace}/{self.secret_name}",
            self.store.get_secret(self.system_namespace, self.secret_name),
        )
        data = secret.get("data") or {}
        ca_cert = data.get(self.ca_cert_key)
        if not ca_cert:
            raise ConfigurationError(
                f"Secret {self.system_namespace}/{self.secret_name} is missing "
                f"{self.ca_cert_key!r} key",
                retryable=True,
                user_action="Wait for the certificate issuer to populate the secret",
            )
        return ca_cert

    async def reconcile(self, key: str) -> ReconcileOutcome:
        """
        Run one reconcile pass for the registration named ``key``.

        Returns:
            SKIPPED when not leader, UNCHANGED when already converged,
            UPDATED after one replace

        Raises:
            ConfigurationError: Missing CA key or webhook service reference
            KubernetesAPIError: A read or the write failed
            TemporaryError: A read or the write timed out
        """
        if not self.leadership.is_leader_for(key):
            self.logger.debug(
                f"Not the leader for {key}, skipping reconcile",
                resource_type=self.resource_type,
                resource_name=key,
            )
            self.metrics.record_reconciliation_skip(
                self.resource_type, key, reason="not_leader"
            )
            return ReconcileOutcome.SKIPPED

        start_time = time.time()
        self.logger.log_reconciliation_start(
            resource_type=self.resource_type, resource_name=key
        )

        try:
            async with self.metrics.track_reconciliation(self.resource_type, key):
                outcome = await self._converge(key)
        except Exception as e:
            self.logger.log_reconciliation_error(
                resource_type=self.resource_type,
                resource_name=key,
                error=e,
                duration=time.time() - start_time,
            )
            raise

        self.logger.log_reconciliation_success(
            resource_type=self.resource_type,
            resource_name=key,
            outcome=outcome.value,
            duration=time.time() - start_time,
        )
        return outcome

    async def _converge(self, key: str) -> ReconcileOutcome:
        certificate_bundle = await self._read_certificate_bundle()

        observed = await self._bounded(
            f"read MutatingWebhookConfiguration {key}",
            self.store.get_registration(key),
        )
        owner_namespace = await self._bounded(
            f"read namespace {self.system_namespace}",
            self.store.get_namespace(self.system_namespace),
        )

        desired = self.builder.build(observed, owner_namespace, certificate_bundle)

        if semantic_equal(observed, desired):
            return ReconcileOutcome.UNCHANGED

        await self._bounded(
            f"update MutatingWebhookConfiguration {key}",
            self.store.replace_registration(key, desired),
        )
        self.metrics.record_registration_update(key)
        return ReconcileOutcome.UPDATED
