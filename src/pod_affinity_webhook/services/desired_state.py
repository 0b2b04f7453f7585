"""
Desired state of the MutatingWebhookConfiguration.

The builder takes the registration as observed in the cluster and returns
the document it should be: owned by the operator's home Namespace, trusting
the current CA bundle, routing pod creations to the admission path and
skipping namespaces that carry the exclude label.
"""

import copy
import json
from typing import Any

from pod_affinity_webhook.constants import (
    EXCLUDE_LABEL_KEY,
    POD_CREATE_RULES,
    REINVOCATION_POLICY_IF_NEEDED,
)
from pod_affinity_webhook.errors import ConfigurationError
from pod_affinity_webhook.utils.kubernetes import controller_owner_reference


def merge_selector_expressions(
    selector: dict[str, Any] | None, wanted: list[dict[str, Any]]
) -> dict[str, Any]:
    """
    Ensure every wanted expression is present in a label selector.

    An expression with the same key as a wanted one is replaced in place,
    otherwise the wanted expression is appended. ``matchLabels`` and
    unrelated expressions are kept, so merging twice yields the same selector.
    """
    merged = copy.deepcopy(selector) if selector else {}
    expressions = list(merged.get("matchExpressions") or [])

    for want in wanted:
        for index, existing in enumerate(expressions):
            if existing.get("key") == want["key"]:
                expressions[index] = copy.deepcopy(want)
                break
        else:
            expressions.append(copy.deepcopy(want))

    merged["matchExpressions"] = expressions
    return merged


def _prune_nulls(value: Any) -> Any:
    if isinstance(value, dict):
        pruned = {k: _prune_nulls(v) for k, v in value.items() if v is not None}
        # selector requirements are ANDed, their order carries no meaning
        expressions = pruned.get("matchExpressions")
        if isinstance(expressions, list):
            pruned["matchExpressions"] = sorted(
                expressions, key=lambda e: json.dumps(e, sort_keys=True)
            )
        return pruned
    if isinstance(value, list):
        return [_prune_nulls(item) for item in value]
    return value


def semantic_equal(left: Any, right: Any) -> bool:
    """
    Deep equality of two documents.

    Members whose value is null are ignored, and so is the order of label
    selector ``matchExpressions``.
    """
    return _prune_nulls(left) == _prune_nulls(right)


class DesiredRegistrationBuilder:
    """Computes the desired registration from the observed one."""

    def __init__(
        self,
        path: str,
        exclude_label_key: str = EXCLUDE_LABEL_KEY,
        rules: list[dict[str, Any]] | None = None,
        reinvocation_policy: str = REINVOCATION_POLICY_IF_NEEDED,
    ):
        self.path = path
        self.exclude_label_key = exclude_label_key
        self.rules = rules if rules is not None else POD_CREATE_RULES
        self.reinvocation_policy = reinvocation_policy

    @property
    def exclusion_expression(self) -> dict[str, Any]:
        return {"key": self.exclude_label_key, "operator": "DoesNotExist"}

    def build(
        self,
        observed: dict[str, Any],
        owner_namespace: dict[str, Any],
        certificate_bundle: str,
    ) -> dict[str, Any]:
        """
        Build the desired registration document.

        Args:
            observed: Registration as read from the cluster
            owner_namespace: The operator's home Namespace object
            certificate_bundle: Base64 encoded CA certificate

        Returns:
            A new document; ``observed`` is left untouched

        Raises:
            ConfigurationError: If the targeted webhook has no service reference
        """
        desired = copy.deepcopy(observed)
        metadata = desired.setdefault("metadata", {})
        name = metadata.get("name")

        metadata["ownerReferences"] = [controller_owner_reference(owner_namespace)]

        for webhook in desired.get("webhooks") or []:
            if webhook.get("name") != name:
                continue

            webhook["rules"] = copy.deepcopy(self.rules)
            webhook["namespaceSelector"] = merge_selector_expressions(
                webhook.get("namespaceSelector"), [self.exclusion_expression]
            )

            client_config = webhook.setdefault("clientConfig", {})
            client_config["caBundle"] = certificate_bundle

            service = client_config.get("service")
            if service is None:
                raise ConfigurationError(
                    f"Missing service reference for webhook: {name}",
                    retryable=True,
                    user_action=(
                        "Point clientConfig.service of the webhook at the "
                        "admission webhook Service"
                    ),
                )
            service["path"] = self.path
            webhook["reinvocationPolicy"] = self.reinvocation_policy

        return desired
