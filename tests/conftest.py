"""
Shared fixtures: sample cluster objects and an in-memory registration store.

The sample registration is converged: reconciling it against the sample
secret and namespace produces no write.
"""

import copy
from typing import Any

import pytest

from pod_affinity_webhook.constants import POD_CREATE_RULES
from pod_affinity_webhook.errors import KubernetesAPIError

REGISTRATION_NAME = "pod-affinity.webhook.pipeline.tekton.dev"
SYSTEM_NAMESPACE = "tekton-pipelines"
SECRET_NAME = "pod-affinity-webhook-certs"
NAMESPACE_UID = "7f3b2c1e-5a4d-4e8f-9b0a-1c2d3e4f5a6b"
WEBHOOK_PATH = "/pod-affinity"

# base64("new-ca") and base64("old-ca")
CURRENT_CA_BUNDLE = "bmV3LWNh"
STALE_CA_BUNDLE = "b2xkLWNh"


def make_namespace() -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {"name": SYSTEM_NAMESPACE, "uid": NAMESPACE_UID},
    }


def make_secret(ca_bundle: str | None = CURRENT_CA_BUNDLE) -> dict[str, Any]:
    data = {"server-cert.pem": "c2VydmVy", "server-key.pem": "a2V5"}
    if ca_bundle is not None:
        data["caCert"] = ca_bundle
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": SECRET_NAME, "namespace": SYSTEM_NAMESPACE},
        "type": "Opaque",
        "data": data,
    }


def make_registration(ca_bundle: str = CURRENT_CA_BUNDLE) -> dict[str, Any]:
    """A registration already matching its desired state."""
    return {
        "apiVersion": "admissionregistration.k8s.io/v1",
        "kind": "MutatingWebhookConfiguration",
        "metadata": {
            "name": REGISTRATION_NAME,
            "resourceVersion": "4711",
            "uid": "0e9d8c7b-6a5f-4e3d-2c1b-0a9f8e7d6c5b",
            "ownerReferences": [
                {
                    "apiVersion": "v1",
                    "kind": "Namespace",
                    "name": SYSTEM_NAMESPACE,
                    "uid": NAMESPACE_UID,
                    "controller": True,
                    "blockOwnerDeletion": True,
                }
            ],
        },
        "webhooks": [
            {
                "name": REGISTRATION_NAME,
                "admissionReviewVersions": ["v1"],
                "sideEffects": "None",
                "failurePolicy": "Fail",
                "timeoutSeconds": 10,
                "clientConfig": {
                    "caBundle": ca_bundle,
                    "service": {
                        "name": "tekton-pipelines-webhook",
                        "namespace": SYSTEM_NAMESPACE,
                        "path": WEBHOOK_PATH,
                        "port": 443,
                    },
                },
                "rules": copy.deepcopy(POD_CREATE_RULES),
                "namespaceSelector": {
                    "matchExpressions": [
                        {
                            "key": "webhooks.knative.dev/exclude",
                            "operator": "DoesNotExist",
                        }
                    ]
                },
                "reinvocationPolicy": "IfNeeded",
            }
        ],
    }


class FakeRegistrationStore:
    """In-memory registration store recording every write."""

    def __init__(
        self,
        registration: dict[str, Any] | None = None,
        secret: dict[str, Any] | None = None,
        namespace: dict[str, Any] | None = None,
    ):
        self.registration = registration
        self.secret = secret
        self.namespace = namespace
        self.writes: list[dict[str, Any]] = []

    async def get_registration(self, name: str) -> dict[str, Any]:
        if self.registration is None or self.registration["metadata"]["name"] != name:
            raise KubernetesAPIError(
                f"Failed to read MutatingWebhookConfiguration {name}",
                reason="NotFound",
            )
        return copy.deepcopy(self.registration)

    async def replace_registration(
        self, name: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        self.writes.append(copy.deepcopy(body))
        self.registration = copy.deepcopy(body)
        return copy.deepcopy(body)

    async def get_secret(self, namespace: str, name: str) -> dict[str, Any]:
        if self.secret is None:
            raise KubernetesAPIError(
                f"Failed to read secret {namespace}/{name}", reason="NotFound"
            )
        return copy.deepcopy(self.secret)

    async def get_namespace(self, name: str) -> dict[str, Any]:
        if self.namespace is None:
            raise KubernetesAPIError(
                f"Failed to read namespace {name}", reason="NotFound"
            )
        return copy.deepcopy(self.namespace)


@pytest.fixture
def registration() -> dict[str, Any]:
    return make_registration()


@pytest.fixture
def namespace() -> dict[str, Any]:
    return make_namespace()


@pytest.fixture
def secret() -> dict[str, Any]:
    return make_secret()


@pytest.fixture
def store(registration, secret, namespace) -> FakeRegistrationStore:
    return FakeRegistrationStore(
        registration=registration, secret=secret, namespace=namespace
    )
