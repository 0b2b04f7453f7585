#!/usr/bin/env python3
"""
Pod Affinity Webhook - Main entry point for the Kopf-based operator.

The operator runs two independent paths:
- An HTTPS admission webhook adding a required pod affinity term to pods of
  a workflow, so they are co-located on one node
- A reconciler keeping the MutatingWebhookConfiguration that routes pod
  creations to the webhook in sync (rules, CA bundle, namespace selector,
  owner reference)

Reconciles are triggered by changes to the registration, changes to the
certificate secret, leadership acquisition and a periodic resync.

Usage:
    python -m pod_affinity_webhook.operator
    # Or with kopf directly:
    kopf run -m pod_affinity_webhook.operator --standalone -n tekton-pipelines

Environment Variables:
    SYSTEM_NAMESPACE: Namespace the operator runs in and owns the registration
    WEBHOOK_NAME: Name of the MutatingWebhookConfiguration to keep in sync
    LEADER_ELECTION_ENABLED: Gate registration writes on holding a Lease
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
"""

import asyncio
import logging
import sys

import kopf

from pod_affinity_webhook.constants import (
    MUTATING_WEBHOOK_GROUP,
    MUTATING_WEBHOOK_PLURAL,
    MUTATING_WEBHOOK_VERSION,
    REINVOCATION_POLICY_IF_NEEDED,
)
from pod_affinity_webhook.errors import OperatorError
from pod_affinity_webhook.observability.leader_election import (
    LeadershipOracle,
    StandaloneLeadership,
    get_leader_election_monitor,
)
from pod_affinity_webhook.observability.logging import setup_structured_logging
from pod_affinity_webhook.observability.metrics import MetricsServer
from pod_affinity_webhook.observability.tracing import (
    setup_tracing,
    shutdown_tracing,
    traced_handler,
)
from pod_affinity_webhook.services.admission_mutator import PodAffinityMutator
from pod_affinity_webhook.services.desired_state import DesiredRegistrationBuilder
from pod_affinity_webhook.services.webhook_config_reconciler import (
    ReconcileOutcome,
    WebhookConfigReconciler,
)
from pod_affinity_webhook.settings import settings as operator_settings
from pod_affinity_webhook.utils.codec import new_core_codec
from pod_affinity_webhook.utils.handler_logging import log_handler_entry
from pod_affinity_webhook.utils.kubernetes import (
    KubernetesRegistrationStore,
    get_kubernetes_client,
)
from pod_affinity_webhook.webhooks.server import AdmissionWebhookServer

logger = logging.getLogger(__name__)

REGISTRATION_RESOURCE = "mutatingwebhookconfiguration"

# Global references to servers for cleanup
_global_metrics_server: MetricsServer | None = None
_global_webhook_server: AdmissionWebhookServer | None = None


def configure_logging() -> None:
    """Configure structured logging for the operator based on operator_settings."""
    setup_structured_logging(
        log_level=operator_settings.log_level.upper(),
        enable_json_formatting=operator_settings.json_logs,
        correlation_id_enabled=operator_settings.correlation_ids,
        log_health_probes=operator_settings.log_health_probes,
        webhook_log_level=operator_settings.webhook_log_level,
    )


def build_leadership() -> LeadershipOracle:
    """Lease based leadership when enabled, otherwise always leader."""
    if operator_settings.leader_election_enabled:
        return get_leader_election_monitor()
    return StandaloneLeadership()


def build_reconciler(
    store: KubernetesRegistrationStore, leadership: LeadershipOracle
) -> WebhookConfigReconciler:
    builder = DesiredRegistrationBuilder(
        path=operator_settings.webhook_path,
        exclude_label_key=operator_settings.exclude_label_key,
        reinvocation_policy=REINVOCATION_POLICY_IF_NEEDED,
    )
    return WebhookConfigReconciler(
        store=store,
        leadership=leadership,
        builder=builder,
        system_namespace=operator_settings.operator_namespace,
        secret_name=operator_settings.webhook_secret_name,
        ca_cert_key=operator_settings.ca_cert_key,
        timeout=operator_settings.reconcile_timeout_seconds,
    )


def build_mutator() -> PodAffinityMutator:
    return PodAffinityMutator(
        codec=new_core_codec(),
        owning_workflow_label=operator_settings.owning_workflow_label,
        affinity_assistant_annotation=operator_settings.affinity_assistant_annotation,
        instance_label_key=operator_settings.instance_label_key,
        topology_key=operator_settings.topology_key,
    )


async def reconcile_registration(memo: kopf.Memo) -> ReconcileOutcome:
    """Run one reconcile pass; passes for the registration never overlap."""
    async with memo.reconcile_lock:
        return await memo.reconciler.reconcile(operator_settings.webhook_name)


async def reconcile_and_log(memo: kopf.Memo, trigger: str) -> None:
    """Reconcile from a trigger that kopf does not retry; the resync timer does."""
    try:
        outcome = await reconcile_registration(memo)
    except OperatorError as e:
        logger.warning(
            f"Reconcile triggered by {trigger} failed, the periodic resync "
            f"will retry: {e}"
        )
        return
    logger.debug(f"Reconcile triggered by {trigger}: {outcome.value}")


def _is_registration(name, **_) -> bool:
    return name == operator_settings.webhook_name


def _is_certificate_secret(name, namespace, **_) -> bool:
    return (
        name == operator_settings.webhook_secret_name
        and namespace == operator_settings.operator_namespace
    )


@kopf.on.startup()
async def startup_handler(
    settings: kopf.OperatorSettings, memo: kopf.Memo, **_
) -> None:
    """
    Operator startup configuration.

    This handler runs once when the operator starts up and:
    - Loads the Kubernetes configuration
    - Builds the reconciler and the admission mutator
    - Starts the admission webhook and metrics servers
    - Starts competing for the leader Lease when enabled
    - Schedules the initial reconcile
    """
    logging.info("Starting pod affinity webhook...")
    settings.watching.reconnect_backoff = 1.0

    api_client = get_kubernetes_client()

    setup_tracing(
        enabled=operator_settings.tracing_enabled,
        endpoint=operator_settings.tracing_endpoint,
        sample_rate=operator_settings.tracing_sample_rate,
    )

    leadership = build_leadership()
    memo.reconcile_lock = asyncio.Lock()
    memo.reconciler = build_reconciler(
        KubernetesRegistrationStore(api_client), leadership
    )

    # Failing to serve admission requests is fatal
    webhook_server = AdmissionWebhookServer(
        mutator=build_mutator(),
        path=operator_settings.webhook_path,
        port=operator_settings.webhook_port,
        host=operator_settings.webhook_host,
        cert_dir=operator_settings.webhook_cert_dir,
    )
    await webhook_server.start()

    global _global_webhook_server
    _global_webhook_server = webhook_server

    try:
        metrics_server = MetricsServer(
            port=operator_settings.metrics_port,
            host=operator_settings.metrics_host,
            readiness_check=lambda: webhook_server.is_serving,
        )
        await metrics_server.start()
        logging.info(
            f"Metrics and health endpoints available on {operator_settings.metrics_host}:{operator_settings.metrics_port}"
        )

        global _global_metrics_server
        _global_metrics_server = metrics_server

    except Exception as e:
        logging.error(f"Failed to start metrics server: {e}")
        logging.warning("Continuing without metrics server")

    if operator_settings.leader_election_enabled:
        monitor = get_leader_election_monitor()

        async def on_promotion() -> None:
            await reconcile_and_log(memo, "leadership promotion")

        monitor.add_promotion_hook(on_promotion)
        memo.leader_monitor = monitor
        memo.leader_stopped = asyncio.Event()
        memo.leader_task = asyncio.create_task(
            monitor.run(
                memo.leader_stopped,
                operator_settings.leader_election_renew_interval_seconds,
            )
        )
        logging.info(
            f"Leader election enabled for instance {monitor.instance_id} "
            f"on lease {monitor.namespace}/{monitor.lease_name}"
        )
    else:
        logging.info("Leader election disabled, this replica always writes")

    memo.initial_reconcile = asyncio.create_task(reconcile_and_log(memo, "startup"))


@kopf.on.cleanup()
async def cleanup_handler(memo: kopf.Memo, **_) -> None:
    """
    Operator cleanup handler.

    Stops leader election, the admission webhook and metrics servers, and
    flushes pending spans.
    """
    logging.info("Shutting down pod affinity webhook...")

    leader_task = getattr(memo, "leader_task", None)
    if leader_task is not None:
        memo.leader_stopped.set()
        await leader_task
        await memo.leader_monitor.cancel_hooks()

    global _global_webhook_server
    if _global_webhook_server:
        try:
            await _global_webhook_server.stop()
        except Exception as e:
            logging.error(f"Error stopping admission webhook server: {e}")
        _global_webhook_server = None

    global _global_metrics_server
    if _global_metrics_server:
        try:
            await _global_metrics_server.stop()
        except Exception as e:
            logging.error(f"Error stopping metrics server: {e}")
        _global_metrics_server = None

    shutdown_tracing()


@kopf.on.event(
    MUTATING_WEBHOOK_GROUP,
    MUTATING_WEBHOOK_VERSION,
    MUTATING_WEBHOOK_PLURAL,
    when=_is_registration,
)
@traced_handler("reconcile_registration", resource_type=REGISTRATION_RESOURCE)
async def on_registration_event(event, name, memo: kopf.Memo, **kwargs) -> None:
    """Reconcile when the registration is created or changed by anyone."""
    if event.get("type") == "DELETED":
        logger.warning(
            f"MutatingWebhookConfiguration {name} was deleted; "
            f"it must be recreated by the installer"
        )
        return

    log_handler_entry("event", REGISTRATION_RESOURCE, name, None)
    await reconcile_and_log(memo, f"{REGISTRATION_RESOURCE} event")


@kopf.on.event("", "v1", "secrets", when=_is_certificate_secret)
@traced_handler("reconcile_registration", resource_type="secret")
async def on_certificate_secret_event(
    event, name, namespace, memo: kopf.Memo, **kwargs
) -> None:
    """Reconcile when the certificate secret is issued or rotated."""
    if event.get("type") == "DELETED":
        return

    log_handler_entry("event", "secret", name, namespace)
    await reconcile_and_log(memo, "certificate secret event")


@kopf.timer(
    MUTATING_WEBHOOK_GROUP,
    MUTATING_WEBHOOK_VERSION,
    MUTATING_WEBHOOK_PLURAL,
    when=_is_registration,
    interval=float(operator_settings.resync_interval_seconds),
    initial_delay=float(operator_settings.resync_interval_seconds),
)
@traced_handler("resync_registration", resource_type=REGISTRATION_RESOURCE)
async def resync_registration(name, memo: kopf.Memo, **kwargs) -> str:
    """
    Periodic resync of the registration.

    Operator errors are converted so kopf retries retryable failures with
    their suggested delay.
    """
    log_handler_entry("timer", REGISTRATION_RESOURCE, name, None)
    try:
        outcome = await reconcile_registration(memo)
    except OperatorError as e:
        raise e.as_kopf_error() from e
    return outcome.value


@kopf.on.probe(id="webhook")
async def webhook_probe(**_) -> dict[str, bool]:
    """Liveness probe payload: is the admission webhook serving."""
    serving = _global_webhook_server is not None and _global_webhook_server.is_serving
    return {"serving": serving}


def main() -> None:
    """
    Main entry point for the operator.

    Configures logging, then runs kopf in standalone mode (leadership is
    decided by our own Lease, not by kopf peering) watching the operator
    namespace; the cluster scoped registration is served regardless.
    """
    configure_logging()

    try:
        kopf.run(
            standalone=True,
            namespaces=[operator_settings.operator_namespace],
            liveness_endpoint="http://0.0.0.0:8080/healthz",
        )
    except KeyboardInterrupt:
        logging.info("Received shutdown signal")
        sys.exit(0)
    except Exception as e:
        logging.error(f"Operator failed with error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
