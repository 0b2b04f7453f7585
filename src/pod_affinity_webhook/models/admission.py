"""
AdmissionReview models (admission.k8s.io/v1).

The API server posts an ``AdmissionReview`` carrying a request and expects
the same envelope back carrying a response with the same ``uid``. JSON
patches travel base64 encoded on the wire; in memory the response keeps the
operation list.
"""

import base64
import json
from typing import Any, Literal

from pydantic import BaseModel, Field

from pod_affinity_webhook.constants import (
    ADMISSION_REVIEW_API_VERSION,
    ADMISSION_REVIEW_KIND,
    PATCH_TYPE_JSON_PATCH,
)
from pod_affinity_webhook.utils.patch import JsonPatch


class GroupVersionKind(BaseModel):
    """Fully qualified kind of the admitted object."""

    model_config = {"populate_by_name": True}

    group: str = ""
    version: str
    kind: str

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    def __str__(self) -> str:
        return f"{self.api_version}, Kind={self.kind}"


class AdmissionRequest(BaseModel):
    """Request half of an AdmissionReview."""

    model_config = {"populate_by_name": True, "extra": "allow"}

    uid: str
    kind: GroupVersionKind
    operation: str = "CREATE"
    name: str | None = None
    namespace: str | None = None
    dry_run: bool = Field(False, alias="dryRun")
    object: Any = None


class ResponseStatus(BaseModel):
    code: int | None = None
    message: str | None = None


class AdmissionResponse(BaseModel):
    """Response half of an AdmissionReview."""

    model_config = {"populate_by_name": True}

    uid: str
    allowed: bool
    status: ResponseStatus | None = None
    patch: list[dict[str, Any]] | None = None
    patch_type: Literal["JSONPatch"] | None = Field(None, alias="patchType")

    @classmethod
    def allow(cls, uid: str, patch: JsonPatch) -> "AdmissionResponse":
        return cls(uid=uid, allowed=True, patch=patch, patch_type=PATCH_TYPE_JSON_PATCH)

    @classmethod
    def deny(cls, uid: str, message: str, code: int = 400) -> "AdmissionResponse":
        return cls(
            uid=uid,
            allowed=False,
            status=ResponseStatus(code=code, message=message),
        )

    def to_wire(self) -> dict[str, Any]:
        """Serialize for the API server; an empty patch is omitted."""
        payload: dict[str, Any] = {"uid": self.uid, "allowed": self.allowed}
        if self.status is not None:
            payload["status"] = self.status.model_dump(exclude_none=True)
        if self.patch:
            raw = json.dumps(self.patch, separators=(",", ":")).encode("utf-8")
            payload["patch"] = base64.b64encode(raw).decode("ascii")
            payload["patchType"] = self.patch_type or PATCH_TYPE_JSON_PATCH
        return payload


class AdmissionReview(BaseModel):
    """AdmissionReview envelope."""

    model_config = {"populate_by_name": True, "extra": "allow"}

    api_version: str = Field(ADMISSION_REVIEW_API_VERSION, alias="apiVersion")
    kind: str = ADMISSION_REVIEW_KIND
    request: AdmissionRequest

    def respond(self, response: AdmissionResponse) -> dict[str, Any]:
        """Wrap a response in an envelope of the same API version."""
        return {
            "apiVersion": self.api_version,
            "kind": ADMISSION_REVIEW_KIND,
            "response": response.to_wire(),
        }
