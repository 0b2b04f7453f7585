"""
Admission webhook serving for the pod affinity webhook.

The mutating webhook adds a required pod affinity term to pods created for
a workflow so all of the workflow's pods are scheduled onto the same node.
Requests are served by an aiohttp HTTPS server using certificates issued
externally (e.g. by cert-manager) and mounted into the pod.
"""

from pod_affinity_webhook.webhooks.server import AdmissionWebhookServer

__all__ = ["AdmissionWebhookServer"]
