"""
Pod Affinity Webhook - keeps the pods of one workflow on the same node.

This operator provides:
- A mutating admission webhook adding a required pod affinity term to
  workflow pods not already placed by an affinity assistant
- Reconciliation of the MutatingWebhookConfiguration that registers it
- Optional Lease based leader election for the registration writes
"""

__version__ = "0.1.0"
