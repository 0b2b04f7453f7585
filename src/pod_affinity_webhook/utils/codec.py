"""
Object codec for admitted resources.

An ``ObjectCodec`` maps group/version/kind triples to pydantic models and
converts between raw request payloads and those models. Codecs are built
explicitly and handed to whoever needs them, so tests can swap in a codec
with a different set of kinds.
"""

import json
from typing import Any

from pydantic import BaseModel, ValidationError

from pod_affinity_webhook.errors import AdmissionDecodeError
from pod_affinity_webhook.models.admission import GroupVersionKind
from pod_affinity_webhook.models.pod import Pod


class ObjectCodec:
    """Decodes and encodes Kubernetes objects for a fixed set of kinds."""

    def __init__(self):
        self._kinds: dict[tuple[str, str, str], type[BaseModel]] = {}

    def register(
        self, group: str, version: str, kind: str, model: type[BaseModel]
    ) -> None:
        """Register the model used for objects of ``group/version, Kind=kind``."""
        self._kinds[(group, version, kind)] = model

    def decode(self, data: Any, gvk: GroupVersionKind) -> BaseModel:
        """
        Decode a raw object as the declared kind.

        Args:
            data: Object as a mapping, JSON text or JSON bytes
            gvk: Kind declared by the caller

        Returns:
            Validated model instance

        Raises:
            AdmissionDecodeError: If the payload is missing, malformed, of an
                unregistered kind or contradicts the declared kind
        """
        model = self._kinds.get((gvk.group, gvk.version, gvk.kind))
        if model is None:
            raise AdmissionDecodeError(f"no kind {gvk} is registered in the codec")

        if data is None:
            raise AdmissionDecodeError(f"request carries no {gvk.kind} object")

        if isinstance(data, (bytes, str)):
            try:
                data = json.loads(data)
            except ValueError as e:
                raise AdmissionDecodeError(
                    f"object is not valid JSON: {e}", cause=e
                ) from e

        if not isinstance(data, dict):
            raise AdmissionDecodeError(
                f"expected a JSON object for {gvk.kind}, got {type(data).__name__}"
            )

        declared_kind = data.get("kind")
        if declared_kind is not None and declared_kind != gvk.kind:
            raise AdmissionDecodeError(
                f"object kind {declared_kind!r} does not match requested kind {gvk.kind!r}"
            )

        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise AdmissionDecodeError(
                f"object does not match the {gvk.kind} schema: {e}", cause=e
            ) from e

    def encode(self, obj: BaseModel) -> dict[str, Any]:
        """
        Encode a model back into a JSON-compatible document.

        Only fields present in the decoded payload or assigned since are
        written, so an untouched object encodes to the document it came from.

        Raises:
            AdmissionDecodeError: If the model cannot be serialized
        """
        try:
            return obj.model_dump(mode="json", by_alias=True, exclude_unset=True)
        except (ValueError, TypeError) as e:
            raise AdmissionDecodeError(
                f"failed to serialize {type(obj).__name__}: {e}", cause=e
            ) from e


def new_core_codec() -> ObjectCodec:
    """Build the codec used by the pod admission path."""
    codec = ObjectCodec()
    codec.register("", "v1", "Pod", Pod)
    return codec
