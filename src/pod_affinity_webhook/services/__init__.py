"""
Services package - reconcile and admission logic.

Contains:
- The desired state builder for the MutatingWebhookConfiguration
- The reconciler that converges the registration
- The pod affinity admission mutator
"""

from pod_affinity_webhook.services.admission_mutator import PodAffinityMutator
from pod_affinity_webhook.services.desired_state import DesiredRegistrationBuilder
from pod_affinity_webhook.services.webhook_config_reconciler import (
    ReconcileOutcome,
    WebhookConfigReconciler,
)

__all__ = [
    "DesiredRegistrationBuilder",
    "PodAffinityMutator",
    "ReconcileOutcome",
    "WebhookConfigReconciler",
]
