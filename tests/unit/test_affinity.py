"""
Unit tests for affinity token derivation.

Expected values are the first ten hex characters of ``sha256sum`` of the
workflow name.
"""

import re

import pytest

from pod_affinity_webhook.utils.affinity import derive_affinity_name


class TestDeriveAffinityName:
    @pytest.mark.parametrize(
        "workflow_id,expected",
        [
            ("wf-1", "custom-pod-affinity-b3dcb3863c"),
            ("wf-2", "custom-pod-affinity-109303069d"),
            ("pipeline-run-abc", "custom-pod-affinity-eb62679f8e"),
            ("", "custom-pod-affinity-e3b0c44298"),
        ],
    )
    def test_known_values(self, workflow_id, expected):
        assert derive_affinity_name(workflow_id) == expected

    def test_deterministic(self):
        assert derive_affinity_name("wf-1") == derive_affinity_name("wf-1")

    def test_distinct_workflows_get_distinct_tokens(self):
        assert derive_affinity_name("wf-1") != derive_affinity_name("wf-2")

    def test_token_is_a_valid_label_value(self):
        """Label values are limited to 63 characters."""
        token = derive_affinity_name("a" * 500)
        assert len(token) == len("custom-pod-affinity-") + 10
        assert re.fullmatch(r"custom-pod-affinity-[0-9a-f]{10}", token)
