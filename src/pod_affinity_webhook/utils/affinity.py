"""
Affinity token derivation.

Pods of one workflow are co-located by a required pod affinity term that
matches a label value derived from the workflow identifier. The derivation is
part of the compatibility contract of admitted pods: it must yield the same
token in every replica and across restarts.
"""

import hashlib

from pod_affinity_webhook.constants import AFFINITY_HASH_LENGTH, AFFINITY_NAME_PREFIX


def derive_affinity_name(workflow_id: str) -> str:
    """
    Derive the affinity token for a workflow.

    Args:
        workflow_id: Identifier of the owning workflow (e.g. a PipelineRun name)

    Returns:
        ``custom-pod-affinity-`` followed by the first 10 hex characters of
        the SHA-256 digest of the identifier
    """
    digest = hashlib.sha256(workflow_id.encode("utf-8")).hexdigest()
    return f"{AFFINITY_NAME_PREFIX}-{digest[:AFFINITY_HASH_LENGTH]}"
