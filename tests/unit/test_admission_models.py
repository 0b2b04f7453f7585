"""
Unit tests for the AdmissionReview models.
"""

import base64
import json

import pytest
from pydantic import ValidationError

from pod_affinity_webhook.models.admission import (
    AdmissionResponse,
    AdmissionReview,
    GroupVersionKind,
)

REVIEW = {
    "apiVersion": "admission.k8s.io/v1",
    "kind": "AdmissionReview",
    "request": {
        "uid": "705ab4f5-6393-11e8-b7cc-42010a800002",
        "kind": {"group": "", "version": "v1", "kind": "Pod"},
        "resource": {"group": "", "version": "v1", "resource": "pods"},
        "operation": "CREATE",
        "namespace": "ci",
        "dryRun": False,
        "userInfo": {"username": "system:serviceaccount:tekton-pipelines:controller"},
        "object": {"apiVersion": "v1", "kind": "Pod", "metadata": {"name": "p"}},
    },
}


class TestGroupVersionKind:
    def test_core_group(self):
        gvk = GroupVersionKind(version="v1", kind="Pod")
        assert gvk.api_version == "v1"
        assert str(gvk) == "v1, Kind=Pod"

    def test_named_group(self):
        gvk = GroupVersionKind(group="apps", version="v1", kind="Deployment")
        assert gvk.api_version == "apps/v1"


class TestAdmissionReview:
    def test_parses_request(self):
        review = AdmissionReview.model_validate(REVIEW)
        assert review.request.uid == "705ab4f5-6393-11e8-b7cc-42010a800002"
        assert review.request.kind.kind == "Pod"
        assert review.request.dry_run is False
        assert review.request.object["metadata"]["name"] == "p"

    def test_request_is_required(self):
        with pytest.raises(ValidationError):
            AdmissionReview.model_validate({"apiVersion": "admission.k8s.io/v1"})

    def test_respond_wraps_response(self):
        review = AdmissionReview.model_validate(REVIEW)
        envelope = review.respond(AdmissionResponse.allow(review.request.uid, []))
        assert envelope == {
            "apiVersion": "admission.k8s.io/v1",
            "kind": "AdmissionReview",
            "response": {"uid": review.request.uid, "allowed": True},
        }


class TestAdmissionResponse:
    def test_patch_is_base64_json_on_the_wire(self):
        patch = [{"op": "add", "path": "/spec/affinity", "value": {}}]
        wire = AdmissionResponse.allow("uid-1", patch).to_wire()

        assert wire["allowed"] is True
        assert wire["patchType"] == "JSONPatch"
        assert json.loads(base64.b64decode(wire["patch"])) == patch

    def test_empty_patch_is_omitted(self):
        wire = AdmissionResponse.allow("uid-1", []).to_wire()
        assert "patch" not in wire
        assert "patchType" not in wire

    def test_deny_carries_reason(self):
        wire = AdmissionResponse.deny("uid-1", "cannot decode").to_wire()
        assert wire == {
            "uid": "uid-1",
            "allowed": False,
            "status": {"code": 400, "message": "cannot decode"},
        }
