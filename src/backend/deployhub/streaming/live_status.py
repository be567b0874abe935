"""Per-connection live status push for one deployment.

Two tasks share a stop signal:
  poller    every interval, sends a ``status`` message then a ``podStatus``
            message. Cluster errors become ``error`` messages; a failed send
            (client gone) ends the task.
  listener  drains inbound client frames until the client disconnects.
Whichever finishes first sets the signal; the other is cancelled and awaited.
The poller sleeps on the signal rather than a bare timer, so closing the
connection stops it within one polling interval.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Protocol

from kubernetes import client

from deployhub.cluster.client import ClusterClient
from deployhub.errors import ClusterApiError
from deployhub.schemas.live_status import (
    ErrorMessage,
    PodInfo,
    PodStatusMessage,
    StatusMessage,
    WorkloadCondition,
)

log = logging.getLogger(__name__)


class MessageChannel(Protocol):
    """The subset of starlette's WebSocket the streamer relies on."""

    async def send_text(self, data: str) -> None: ...

    def iter_text(self) -> AsyncIterator[str]: ...


def status_message(workload: client.V1Deployment) -> StatusMessage:
    status = workload.status or client.V1DeploymentStatus()
    return StatusMessage(
        replicas=status.replicas or 0,
        ready_replicas=status.ready_replicas or 0,
        available_replicas=status.available_replicas or 0,
        conditions=[
            WorkloadCondition(type=c.type, status=c.status, reason=c.reason, message=c.message)
            for c in status.conditions or []
        ],
    )


def pod_info(pod: client.V1Pod) -> PodInfo:
    status = pod.status or client.V1PodStatus()
    container_statuses = status.container_statuses or []
    node = pod.spec.node_name if pod.spec is not None else None
    return PodInfo(
        name=pod.metadata.name if pod.metadata is not None else "",
        phase=status.phase or "Unknown",
        ready=bool(container_statuses) and all(cs.ready for cs in container_statuses),
        restarts=sum(cs.restart_count or 0 for cs in container_statuses),
        node=node or status.host_ip,
    )


class LiveStatusStreamer:
    def __init__(
        self,
        cluster: ClusterClient,
        namespace: str,
        resource_name: str,
        label_selector: str,
        interval_seconds: float,
    ) -> None:
        self._cluster = cluster
        self._namespace = namespace
        self._name = resource_name
        self._selector = label_selector
        self._interval = interval_seconds

    async def run(self, channel: MessageChannel) -> None:
        stop = asyncio.Event()
        poller = asyncio.create_task(self._poll(channel, stop), name=f"poller:{self._name}")
        listener = asyncio.create_task(self._listen(channel, stop), name=f"listener:{self._name}")

        done, pending = await asyncio.wait({poller, listener}, return_when=asyncio.FIRST_COMPLETED)
        stop.set()
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            if not task.cancelled() and task.exception() is not None:
                log.error(
                    "Live status task %s failed", task.get_name(), exc_info=task.exception()
                )
        log.info("Live status stream for %s/%s closed", self._namespace, self._name)

    async def tick(self) -> list[StatusMessage | PodStatusMessage | ErrorMessage]:
        """One polling round: the workload status first, then the pods."""
        messages: list[StatusMessage | PodStatusMessage | ErrorMessage] = []
        try:
            workload = await self._cluster.read_workload_status(self._namespace, self._name)
            messages.append(status_message(workload))
        except ClusterApiError as exc:
            messages.append(ErrorMessage(message=f"Failed to get status: {exc.message}"))
        try:
            pods = await self._cluster.list_pods(self._namespace, self._selector)
            messages.append(PodStatusMessage(pods=[pod_info(p) for p in pods]))
        except ClusterApiError as exc:
            messages.append(ErrorMessage(message=f"Failed to get pods: {exc.message}"))
        return messages

    async def _poll(self, channel: MessageChannel, stop: asyncio.Event) -> None:
        while not stop.is_set():
            for message in await self.tick():
                try:
                    await channel.send_text(message.model_dump_json(by_alias=True))
                except Exception as exc:  # noqa: BLE001
                    # Any send failure means the client is gone.
                    log.info("Live status send failed for %s: %s", self._name, exc)
                    return
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._interval)
            except TimeoutError:
                continue

    async def _listen(self, channel: MessageChannel, stop: asyncio.Event) -> None:
        # Inbound frames are reserved for future client commands (log tailing).
        async for _ in channel.iter_text():
            if stop.is_set():
                return
