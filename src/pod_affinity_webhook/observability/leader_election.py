"""
Leader election for registration writes.

Only the leader replica rewrites the MutatingWebhookConfiguration. Every
replica serves admission requests. Leadership is answered by a
``LeadershipOracle``: ``StandaloneLeadership`` for single replica
deployments, or ``LeaderElectionMonitor``, which competes for a
coordination.k8s.io/v1 Lease and emits metrics about leadership changes.
"""

import asyncio
import logging
import platform
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

import kopf
from kubernetes import client
from kubernetes.client.rest import ApiException

from pod_affinity_webhook.settings import settings

from .metrics import metrics_collector

logger = logging.getLogger(__name__)

PromotionHook = Callable[[], Awaitable[None]]


class LeadershipOracle(Protocol):
    """Answers whether this replica may write the object behind ``key``."""

    def is_leader_for(self, key: str) -> bool: ...


class StandaloneLeadership:
    """Oracle for a single replica: always the leader."""

    def is_leader_for(self, key: str) -> bool:
        return True


class LeaderElectionMonitor:
    """Acquires and renews the leader Lease and tracks leadership changes."""

    def __init__(
        self,
        lease_name: str,
        namespace: str,
        lease_duration_seconds: int = 15,
        instance_id: str | None = None,
        coordination_api: client.CoordinationV1Api | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the leader election monitor.

        Args:
            lease_name: Name of the Lease whose holder is the leader
            namespace: Namespace of the Lease
            lease_duration_seconds: Validity of a lease without renewal
            instance_id: Holder identity of this replica (defaults to pod name)
            coordination_api: Client for coordination.k8s.io/v1
            clock: Source of the current time, timezone aware
        """
        self.lease_name = lease_name
        self.namespace = namespace
        self.lease_duration_seconds = lease_duration_seconds
        self.instance_id = instance_id or self._get_instance_id()
        self.is_leader = False
        self.previous_leader: str | None = None
        self._coordination_api = coordination_api
        self._clock = clock or (lambda: datetime.now(UTC))
        self._promotion_hooks: list[PromotionHook] = []
        self._hook_tasks: set[asyncio.Task] = set()

        logger.info(
            f"Leader election monitor initialized for instance: {self.instance_id}"
        )

    @property
    def coordination_api(self) -> client.CoordinationV1Api:
        if self._coordination_api is None:
            self._coordination_api = client.CoordinationV1Api()
        return self._coordination_api

    def _get_instance_id(self) -> str:
        """
        Generate a unique instance ID for this operator pod.

        Returns:
            Unique identifier for this operator instance
        """
        # Set via the downward API
        if settings.pod_name:
            return settings.pod_name

        hostname = platform.node()
        if hostname:
            return hostname

        return f"operator-{uuid.uuid4().hex[:8]}"

    def is_leader_for(self, key: str) -> bool:
        # A single lease covers every registration key
        return self.is_leader

    def add_promotion_hook(self, hook: PromotionHook) -> None:
        """Register a coroutine function started each time leadership is acquired."""
        self._promotion_hooks.append(hook)

    async def on_leadership_acquired(self) -> None:
        """Called when this instance becomes the leader."""
        logger.info(f"Leadership acquired by instance: {self.instance_id}")

        if self.previous_leader and self.previous_leader != self.instance_id:
            metrics_collector.record_leader_election_change(
                previous_leader=self.previous_leader,
                new_leader=self.instance_id,
                namespace=self.namespace,
            )

        self.is_leader = True
        self.previous_leader = self.instance_id
        metrics_collector.update_leader_election_status(
            instance_id=self.instance_id, namespace=self.namespace, is_leader=True
        )

        # Hooks must not delay the next renewal
        for hook in self._promotion_hooks:
            task = asyncio.create_task(self._run_hook(hook))
            self._hook_tasks.add(task)
            task.add_done_callback(self._hook_tasks.discard)

    async def _run_hook(self, hook: PromotionHook) -> None:
        try:
            await hook()
        except Exception as e:
            logger.error(f"Leadership promotion hook failed: {e}", exc_info=True)

    async def wait_for_hooks(self) -> None:
        """Wait until the promotion hooks started so far have finished."""
        if self._hook_tasks:
            await asyncio.gather(*self._hook_tasks)

    async def cancel_hooks(self) -> None:
        """Cancel promotion hooks that are still running."""
        tasks = list(self._hook_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def on_leadership_lost(self, new_leader: str | None = None) -> None:
        """Called when this instance loses leadership."""
        logger.info(f"Leadership lost by instance: {self.instance_id}")

        self.is_leader = False
        if new_leader:
            self.previous_leader = new_leader
        metrics_collector.update_leader_election_status(
            instance_id=self.instance_id, namespace=self.namespace, is_leader=False
        )

    async def _apply_holder(self, holder: str | None) -> bool:
        was_leader = self.is_leader
        now_leader = holder == self.instance_id

        if not was_leader and now_leader:
            await self.on_leadership_acquired()
        elif was_leader and not now_leader:
            self.on_leadership_lost(new_leader=holder)
        else:
            if holder and not now_leader:
                self.previous_leader = holder
            metrics_collector.update_leader_election_status(
                instance_id=self.instance_id,
                namespace=self.namespace,
                is_leader=now_leader,
            )

        return self.is_leader

    async def check_leadership_status(self) -> bool:
        """
        Re-read the Lease holder and update leadership status.

        Returns:
            True if this instance is currently the leader
        """
        try:
            holder = await asyncio.to_thread(self._get_current_leader)
        except Exception as e:
            logger.error(f"Error checking leadership status: {e}")
            holder = None
        return await self._apply_holder(holder)

    async def try_acquire_or_renew(self) -> bool:
        """
        Acquire the Lease if it is free or expired, or renew it if held.

        Returns:
            True if this instance holds the Lease afterwards
        """
        try:
            holder = await asyncio.to_thread(self._acquire_or_renew)
        except Exception as e:
            logger.error(f"Error acquiring or renewing the leader lease: {e}")
            holder = None
        return await self._apply_holder(holder)

    async def run(self, stopped: asyncio.Event, interval: float) -> None:
        """Keep competing for the Lease until ``stopped`` is set."""
        while not stopped.is_set():
            await self.try_acquire_or_renew()
            try:
                await asyncio.wait_for(stopped.wait(), timeout=interval)
            except TimeoutError:
                pass

    def _get_current_leader(self) -> str | None:
        """
        Get the current leader from the Kubernetes lease.

        Returns:
            Current leader instance ID, or None if no leader
        """
        try:
            lease = self.coordination_api.read_namespaced_lease(
                name=self.lease_name, namespace=self.namespace
            )
        except ApiException as e:
            if e.status == 404:
                logger.debug("Leader election lease not found - no current leader")
                return None
            raise

        if lease.spec and lease.spec.holder_identity:
            if self._expired(lease.spec, self._clock()):
                return None
            return lease.spec.holder_identity
        return None

    def _expired(self, spec: client.V1LeaseSpec, now: datetime) -> bool:
        if spec.renew_time is None:
            return True
        duration = spec.lease_duration_seconds or self.lease_duration_seconds
        return spec.renew_time + timedelta(seconds=duration) < now

    def _acquire_or_renew(self) -> str | None:
        """Returns the holder after the attempt; None if the write raced."""
        now = self._clock()

        try:
            lease = self.coordination_api.read_namespaced_lease(
                name=self.lease_name, namespace=self.namespace
            )
        except ApiException as e:
            if e.status != 404:
                raise
            body = client.V1Lease(
                metadata=client.V1ObjectMeta(
                    name=self.lease_name, namespace=self.namespace
                ),
                spec=client.V1LeaseSpec(
                    holder_identity=self.instance_id,
                    lease_duration_seconds=self.lease_duration_seconds,
                    acquire_time=now,
                    renew_time=now,
                    lease_transitions=0,
                ),
            )
            try:
                self.coordination_api.create_namespaced_lease(
                    namespace=self.namespace, body=body
                )
            except ApiException as create_error:
                if create_error.status == 409:
                    logger.debug("Lost the race to create the leader lease")
                    return None
                raise
            return self.instance_id

        spec = lease.spec or client.V1LeaseSpec()
        holder = spec.holder_identity

        if holder == self.instance_id:
            spec.renew_time = now
        elif holder and not self._expired(spec, now):
            return holder
        else:
            spec.holder_identity = self.instance_id
            spec.lease_duration_seconds = self.lease_duration_seconds
            spec.acquire_time = now
            spec.renew_time = now
            spec.lease_transitions = (spec.lease_transitions or 0) + 1

        lease.spec = spec
        try:
            self.coordination_api.replace_namespaced_lease(
                name=self.lease_name, namespace=self.namespace, body=lease
            )
        except ApiException as e:
            if e.status == 409:
                logger.debug("Leader lease changed while renewing")
                return None
            raise
        return self.instance_id


# Global monitor instance
_leader_election_monitor: LeaderElectionMonitor | None = None


def get_leader_election_monitor() -> LeaderElectionMonitor:
    """Get or create the global leader election monitor instance."""
    global _leader_election_monitor

    if _leader_election_monitor is None:
        _leader_election_monitor = LeaderElectionMonitor(
            lease_name=settings.leader_election_lease_name,
            namespace=settings.operator_namespace,
            lease_duration_seconds=settings.leader_election_lease_duration_seconds,
        )

    return _leader_election_monitor


@kopf.on.event("coordination.k8s.io", "v1", "leases")
async def on_lease_event(event, name, namespace, **kwargs):
    """Follow holder changes of the leader Lease made by other replicas."""
    if not settings.leader_election_enabled:
        return

    monitor = get_leader_election_monitor()

    if name == monitor.lease_name and namespace == monitor.namespace:
        logger.debug(f"Lease event: {event['type']} for {name} in {namespace}")
        await monitor.check_leadership_status()
