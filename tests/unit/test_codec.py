"""
Unit tests for the object codec.
"""

import json

import pytest
from pydantic import BaseModel

from pod_affinity_webhook.errors import AdmissionDecodeError
from pod_affinity_webhook.models.admission import GroupVersionKind
from pod_affinity_webhook.models.pod import Pod
from pod_affinity_webhook.utils.codec import ObjectCodec, new_core_codec

POD_GVK = GroupVersionKind(group="", version="v1", kind="Pod")

POD = {
    "apiVersion": "v1",
    "kind": "Pod",
    "metadata": {
        "generateName": "build-",
        "namespace": "ci",
        "labels": {"tekton.dev/pipelineRun": "wf-1"},
    },
    "spec": {
        "containers": [{"name": "step-build", "image": "golang:1.22"}],
        "restartPolicy": "Never",
    },
}


@pytest.fixture
def codec():
    return new_core_codec()


class TestDecode:
    def test_decodes_mapping(self, codec):
        pod = codec.decode(POD, POD_GVK)
        assert isinstance(pod, Pod)
        assert pod.metadata.labels == {"tekton.dev/pipelineRun": "wf-1"}
        assert pod.metadata.generate_name == "build-"

    def test_decodes_json_bytes(self, codec):
        pod = codec.decode(json.dumps(POD).encode(), POD_GVK)
        assert pod.metadata.namespace == "ci"

    def test_object_without_kind_is_accepted(self, codec):
        data = {k: v for k, v in POD.items() if k != "kind"}
        assert isinstance(codec.decode(data, POD_GVK), Pod)

    def test_unregistered_kind(self, codec):
        gvk = GroupVersionKind(group="apps", version="v1", kind="Deployment")
        with pytest.raises(AdmissionDecodeError, match="apps/v1, Kind=Deployment"):
            codec.decode({"kind": "Deployment"}, gvk)

    def test_missing_object(self, codec):
        with pytest.raises(AdmissionDecodeError):
            codec.decode(None, POD_GVK)

    def test_invalid_json(self, codec):
        with pytest.raises(AdmissionDecodeError, match="not valid JSON"):
            codec.decode(b"{not json", POD_GVK)

    def test_non_object_payload(self, codec):
        with pytest.raises(AdmissionDecodeError):
            codec.decode([POD], POD_GVK)

    def test_kind_mismatch(self, codec):
        with pytest.raises(AdmissionDecodeError, match="does not match"):
            codec.decode({**POD, "kind": "Secret"}, POD_GVK)

    def test_schema_failure(self, codec):
        bad = {**POD, "metadata": {"labels": ["not", "a", "map"]}}
        with pytest.raises(AdmissionDecodeError, match="schema"):
            codec.decode(bad, POD_GVK)


class TestEncode:
    def test_encode_gives_back_the_document(self, codec):
        """Unknown fields survive decoding, so an untouched pod encodes unchanged."""
        assert codec.encode(codec.decode(POD, POD_GVK)) == POD

    def test_absent_fields_stay_absent(self, codec):
        pod = {"apiVersion": "v1", "kind": "Pod", "metadata": {"name": "bare"}}
        assert codec.encode(codec.decode(pod, POD_GVK)) == pod

    def test_encode_uses_wire_names(self, codec):
        pod = codec.decode(POD, POD_GVK)
        encoded = codec.encode(pod)
        assert "generateName" in encoded["metadata"]
        assert "generate_name" not in encoded["metadata"]


class TestRegistration:
    def test_custom_kind(self):
        class ConfigMap(BaseModel):
            model_config = {"extra": "allow"}

            data: dict[str, str] | None = None

        codec = ObjectCodec()
        codec.register("", "v1", "ConfigMap", ConfigMap)
        gvk = GroupVersionKind(version="v1", kind="ConfigMap")

        obj = codec.decode({"kind": "ConfigMap", "data": {"a": "b"}}, gvk)
        assert obj.data == {"a": "b"}

        with pytest.raises(AdmissionDecodeError):
            codec.decode(POD, POD_GVK)
