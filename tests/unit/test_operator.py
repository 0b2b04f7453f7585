"""
Unit tests for the kopf wiring in operator.py.

Handlers are called directly with the keyword arguments kopf would pass;
the reconciler behind them is mocked.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import kopf
import pytest

from pod_affinity_webhook import operator
from pod_affinity_webhook.errors import ConfigurationError, TemporaryError
from pod_affinity_webhook.observability.leader_election import StandaloneLeadership
from pod_affinity_webhook.services.webhook_config_reconciler import ReconcileOutcome
from pod_affinity_webhook.settings import settings


@pytest.fixture
def memo():
    memo = kopf.Memo()
    memo.reconcile_lock = asyncio.Lock()
    memo.reconciler = MagicMock()
    memo.reconciler.reconcile = AsyncMock(return_value=ReconcileOutcome.UPDATED)
    return memo


class TestReconcileAndLog:
    async def test_reconciles_configured_registration(self, memo):
        await operator.reconcile_and_log(memo, "startup")

        memo.reconciler.reconcile.assert_awaited_once_with(settings.webhook_name)

    async def test_operator_errors_are_logged_not_raised(self, memo, caplog):
        memo.reconciler.reconcile.side_effect = TemporaryError("timed out", delay=5)

        await operator.reconcile_and_log(memo, "startup")

        assert "periodic resync will retry" in caplog.text

    async def test_unexpected_errors_propagate(self, memo):
        memo.reconciler.reconcile.side_effect = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            await operator.reconcile_and_log(memo, "startup")

    async def test_passes_never_overlap(self, memo):
        running = 0
        overlapped = False

        async def slow_reconcile(key):
            nonlocal running, overlapped
            running += 1
            overlapped = overlapped or running > 1
            await asyncio.sleep(0.01)
            running -= 1
            return ReconcileOutcome.UNCHANGED

        memo.reconciler.reconcile = slow_reconcile

        await asyncio.gather(
            operator.reconcile_registration(memo),
            operator.reconcile_registration(memo),
        )

        assert overlapped is False


class TestResyncTimer:
    async def test_returns_outcome(self, memo):
        result = await operator.resync_registration(
            name=settings.webhook_name, memo=memo
        )
        assert result == "updated"

    async def test_retryable_error_becomes_temporary(self, memo):
        memo.reconciler.reconcile.side_effect = TemporaryError("timed out", delay=5)

        with pytest.raises(kopf.TemporaryError) as exc_info:
            await operator.resync_registration(name=settings.webhook_name, memo=memo)

        assert exc_info.value.delay == 5

    async def test_configuration_error_becomes_permanent(self, memo):
        memo.reconciler.reconcile.side_effect = ConfigurationError("bad rules")

        with pytest.raises(kopf.PermanentError):
            await operator.resync_registration(name=settings.webhook_name, memo=memo)


class TestEventHandlers:
    async def test_registration_change_reconciles(self, memo):
        await operator.on_registration_event(
            event={"type": "MODIFIED"}, name=settings.webhook_name, memo=memo
        )
        memo.reconciler.reconcile.assert_awaited_once()

    async def test_registration_deletion_is_not_reconciled(self, memo, caplog):
        await operator.on_registration_event(
            event={"type": "DELETED"}, name=settings.webhook_name, memo=memo
        )

        memo.reconciler.reconcile.assert_not_awaited()
        assert "was deleted" in caplog.text

    async def test_secret_rotation_reconciles(self, memo):
        await operator.on_certificate_secret_event(
            event={"type": "MODIFIED"},
            name=settings.webhook_secret_name,
            namespace=settings.operator_namespace,
            memo=memo,
        )
        memo.reconciler.reconcile.assert_awaited_once()

    async def test_secret_deletion_is_ignored(self, memo):
        await operator.on_certificate_secret_event(
            event={"type": "DELETED"},
            name=settings.webhook_secret_name,
            namespace=settings.operator_namespace,
            memo=memo,
        )
        memo.reconciler.reconcile.assert_not_awaited()


class TestEventFilters:
    def test_registration_filter(self):
        assert operator._is_registration(name=settings.webhook_name) is True
        assert operator._is_registration(name="some-other-webhook") is False

    def test_certificate_secret_filter(self):
        assert operator._is_certificate_secret(
            name=settings.webhook_secret_name, namespace=settings.operator_namespace
        )
        assert not operator._is_certificate_secret(
            name=settings.webhook_secret_name, namespace="default"
        )
        assert not operator._is_certificate_secret(
            name="other", namespace=settings.operator_namespace
        )


class TestBuilders:
    def test_standalone_leadership_by_default(self):
        with patch.object(operator.operator_settings, "leader_election_enabled", False):
            assert isinstance(operator.build_leadership(), StandaloneLeadership)

    def test_lease_leadership_when_enabled(self):
        monitor = MagicMock()
        with (
            patch.object(operator.operator_settings, "leader_election_enabled", True),
            patch(
                "pod_affinity_webhook.operator.get_leader_election_monitor",
                return_value=monitor,
            ),
        ):
            assert operator.build_leadership() is monitor

    def test_reconciler_uses_settings(self):
        reconciler = operator.build_reconciler(MagicMock(), StandaloneLeadership())

        assert reconciler.system_namespace == settings.operator_namespace
        assert reconciler.secret_name == settings.webhook_secret_name

    def test_mutator_uses_settings(self):
        mutator = operator.build_mutator()

        assert mutator.owning_workflow_label == settings.owning_workflow_label
        assert mutator.topology_key == settings.topology_key


class TestProbeAndCleanup:
    async def test_probe_reports_serving_state(self):
        server = MagicMock(is_serving=True)
        with patch.object(operator, "_global_webhook_server", server):
            assert await operator.webhook_probe() == {"serving": True}

    async def test_probe_without_server(self):
        with patch.object(operator, "_global_webhook_server", None):
            assert await operator.webhook_probe() == {"serving": False}

    async def test_cleanup_stops_leader_election_and_servers(self):
        memo = kopf.Memo()
        memo.leader_stopped = asyncio.Event()

        async def leader_loop():
            await memo.leader_stopped.wait()

        memo.leader_task = asyncio.create_task(leader_loop())
        memo.leader_monitor = MagicMock(cancel_hooks=AsyncMock())
        webhook_server = MagicMock(stop=AsyncMock())

        with (
            patch.object(operator, "_global_webhook_server", webhook_server),
            patch.object(operator, "_global_metrics_server", None),
            patch("pod_affinity_webhook.operator.shutdown_tracing") as mock_shutdown,
        ):
            await operator.cleanup_handler(memo=memo)
            assert operator._global_webhook_server is None

        assert memo.leader_task.done()
        memo.leader_monitor.cancel_hooks.assert_awaited_once()
        webhook_server.stop.assert_awaited_once()
        mock_shutdown.assert_called_once()
