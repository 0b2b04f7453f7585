"""
Utils package - Utility modules for the pod affinity webhook.

Contains helper modules for:
- JSON patch generation and application
- Affinity token derivation
- Object decoding and encoding
- Kubernetes API access
"""

from pod_affinity_webhook.utils.affinity import derive_affinity_name
from pod_affinity_webhook.utils.patch import JsonPatchConflict, apply_patch, make_patch

__all__ = [
    "JsonPatchConflict",
    "apply_patch",
    "derive_affinity_name",
    "make_patch",
]
