"""
Pod models used by the admission path.

Only the fields the webhook reads or writes are typed; everything else is
kept verbatim as extra fields so that encoding a decoded pod gives back the
document the API server sent.
"""

from pydantic import BaseModel, Field


class LabelSelector(BaseModel):
    """Kubernetes label selector."""

    model_config = {"populate_by_name": True, "extra": "allow"}

    match_labels: dict[str, str] | None = Field(None, alias="matchLabels")
    match_expressions: list[dict] | None = Field(None, alias="matchExpressions")


class PodAffinityTerm(BaseModel):
    """A set of pods a pod must (or must not) share a topology domain with."""

    model_config = {"populate_by_name": True, "extra": "allow"}

    label_selector: LabelSelector | None = Field(None, alias="labelSelector")
    topology_key: str | None = Field(None, alias="topologyKey")


class PodAffinity(BaseModel):
    model_config = {"populate_by_name": True, "extra": "allow"}

    required_during_scheduling_ignored_during_execution: (
        list[PodAffinityTerm] | None
    ) = Field(None, alias="requiredDuringSchedulingIgnoredDuringExecution")


class Affinity(BaseModel):
    """Scheduling constraints of a pod."""

    model_config = {"populate_by_name": True, "extra": "allow"}

    pod_affinity: PodAffinity | None = Field(None, alias="podAffinity")


class PodSpec(BaseModel):
    model_config = {"populate_by_name": True, "extra": "allow"}

    affinity: Affinity | None = None


class ObjectMeta(BaseModel):
    model_config = {"populate_by_name": True, "extra": "allow"}

    name: str | None = None
    generate_name: str | None = Field(None, alias="generateName")
    namespace: str | None = None
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None


class Pod(BaseModel):
    """Core v1 Pod."""

    model_config = {"populate_by_name": True, "extra": "allow"}

    api_version: str | None = Field(None, alias="apiVersion")
    kind: str | None = None
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: PodSpec = Field(default_factory=PodSpec)

    @property
    def display_name(self) -> str:
        """Name for log lines; pods admitted on CREATE often only have generateName."""
        return self.metadata.name or f"{self.metadata.generate_name or ''}<generated>"
