"""
Constants used throughout the pod affinity webhook.

This module defines all constant values used by the operator including:
- Label and annotation keys the admission path reacts to
- The affinity token contract (hash prefix and length)
- Default registration rules and webhook policies
"""

import logging

# Labels and annotations read from admitted pods
OWNING_WORKFLOW_LABEL_KEY = "tekton.dev/pipelineRun"
AFFINITY_ASSISTANT_ANNOTATION = "pipeline.tekton.dev/affinity-assistant"

# Label matched by the injected pod affinity term
INSTANCE_LABEL_KEY = "app.kubernetes.io/instance"
HOSTNAME_TOPOLOGY_KEY = "kubernetes.io/hostname"

# Affinity token contract. Changing either value orphans the co-location
# terms of pods admitted before the change.
AFFINITY_NAME_PREFIX = "custom-pod-affinity"
AFFINITY_HASH_LENGTH = 10

# Namespaces carrying this label are never sent to the webhook
EXCLUDE_LABEL_KEY = "webhooks.knative.dev/exclude"

# Registration defaults
DEFAULT_WEBHOOK_NAME = "pod-affinity.webhook.pipeline.tekton.dev"
DEFAULT_WEBHOOK_PATH = "/pod-affinity"
DEFAULT_SECRET_NAME = "pod-affinity-webhook-certs"
CA_CERT_KEY = "caCert"
REINVOCATION_POLICY_IF_NEEDED = "IfNeeded"
REINVOCATION_POLICY_NEVER = "Never"

POD_CREATE_RULES = [
    {
        "operations": ["CREATE"],
        "apiGroups": [""],
        "apiVersions": ["v1"],
        "resources": ["pods"],
        "scope": "*",
    }
]

# Admission response constants
PATCH_TYPE_JSON_PATCH = "JSONPatch"
ADMISSION_REVIEW_API_VERSION = "admission.k8s.io/v1"
ADMISSION_REVIEW_KIND = "AdmissionReview"

# Admission results (metrics and logs)
ADMISSION_RESULT_MUTATED = "mutated"
ADMISSION_RESULT_UNCHANGED = "unchanged"
ADMISSION_RESULT_DENIED = "denied"

# Kubernetes API coordinates
MUTATING_WEBHOOK_GROUP = "admissionregistration.k8s.io"
MUTATING_WEBHOOK_VERSION = "v1"
MUTATING_WEBHOOK_PLURAL = "mutatingwebhookconfigurations"

# Timeout constants (in seconds)
DEFAULT_RECONCILIATION_TIMEOUT = 30
DEFAULT_RESYNC_INTERVAL = 600

# Log level of the "handler invoked" line emitted by every kopf handler
HANDLER_ENTRY_LOG_LEVEL = logging.INFO
