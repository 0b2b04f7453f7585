"""
Pod affinity admission mutator.

Pods created for a workflow carry the workflow's name in a label. The
mutator adds a required pod affinity term matching a token derived from that
name, so every pod of the workflow lands on the same node. Pods already
placed by an affinity assistant are left alone.

The mutator keeps no state between requests; one instance serves all
concurrent admission requests.
"""

import logging

from pod_affinity_webhook.constants import (
    AFFINITY_ASSISTANT_ANNOTATION,
    HOSTNAME_TOPOLOGY_KEY,
    INSTANCE_LABEL_KEY,
    OWNING_WORKFLOW_LABEL_KEY,
)
from pod_affinity_webhook.errors import AdmissionError, PatchGenerationError
from pod_affinity_webhook.models.admission import AdmissionRequest, AdmissionResponse
from pod_affinity_webhook.models.pod import (
    Affinity,
    LabelSelector,
    Pod,
    PodAffinity,
    PodAffinityTerm,
    PodSpec,
)
from pod_affinity_webhook.utils.affinity import derive_affinity_name
from pod_affinity_webhook.utils.codec import ObjectCodec
from pod_affinity_webhook.utils.patch import JsonPatch, make_patch

logger = logging.getLogger(__name__)


class PodAffinityMutator:
    """Co-locates the pods of one workflow with a required pod affinity term."""

    def __init__(
        self,
        codec: ObjectCodec,
        owning_workflow_label: str = OWNING_WORKFLOW_LABEL_KEY,
        affinity_assistant_annotation: str = AFFINITY_ASSISTANT_ANNOTATION,
        instance_label_key: str = INSTANCE_LABEL_KEY,
        topology_key: str = HOSTNAME_TOPOLOGY_KEY,
    ):
        self.codec = codec
        self.owning_workflow_label = owning_workflow_label
        self.affinity_assistant_annotation = affinity_assistant_annotation
        self.instance_label_key = instance_label_key
        self.topology_key = topology_key

    def admit(self, request: AdmissionRequest) -> AdmissionResponse:
        """
        Decide on one admission request.

        Args:
            request: The request half of an AdmissionReview

        Returns:
            An allowing response carrying the JSON patch (possibly empty), or
            a denying response when the object cannot be decoded or the patch
            cannot be produced
        """
        try:
            patch = self._patch_for(request)
        except AdmissionError as e:
            logger.debug(f"Denying admission request {request.uid}: {e}")
            return AdmissionResponse.deny(request.uid, str(e))

        return AdmissionResponse.allow(request.uid, patch)

    def _patch_for(self, request: AdmissionRequest) -> JsonPatch:
        obj = self.codec.decode(request.object, request.kind)
        target = obj.model_copy(deep=True)

        if isinstance(target, Pod):
            self.mutate(target)

        origin_document = self.codec.encode(obj)
        target_document = self.codec.encode(target)

        try:
            return make_patch(origin_document, target_document)
        except (TypeError, ValueError, RecursionError) as e:
            raise PatchGenerationError(
                f"failed to create patch for {request.kind.kind}: {e}", cause=e
            ) from e

    def affinity_term_for(self, workflow_id: str) -> PodAffinityTerm:
        """Required pod affinity term shared by all pods of ``workflow_id``."""
        return PodAffinityTerm(
            label_selector=LabelSelector(
                match_labels={
                    self.instance_label_key: derive_affinity_name(workflow_id)
                }
            ),
            topology_key=self.topology_key,
        )

    def mutate(self, pod: Pod) -> bool:
        """
        Add the workflow's co-location term to ``pod`` in place.

        Returns:
            True if the pod was changed
        """
        labels = pod.metadata.labels or {}
        annotations = pod.metadata.annotations or {}

        workflow_id = labels.get(self.owning_workflow_label)
        if workflow_id is None:
            return False
        if self.affinity_assistant_annotation in annotations:
            return False

        term = self.affinity_term_for(workflow_id)

        if "spec" not in pod.model_fields_set:
            pod.spec = PodSpec()
        if pod.spec.affinity is None:
            pod.spec.affinity = Affinity()
        if pod.spec.affinity.pod_affinity is None:
            pod.spec.affinity.pod_affinity = PodAffinity()

        pod_affinity = pod.spec.affinity.pod_affinity
        terms = list(pod_affinity.required_during_scheduling_ignored_during_execution or [])

        wanted = term.model_dump(by_alias=True, exclude_none=True)
        if any(t.model_dump(by_alias=True, exclude_none=True) == wanted for t in terms):
            return False

        terms.append(term)
        pod_affinity.required_during_scheduling_ignored_during_execution = terms
        logger.debug(
            f"Co-locating pod {pod.display_name} with workflow {workflow_id} "
            f"on {self.instance_label_key}={derive_affinity_name(workflow_id)}"
        )
        return True
