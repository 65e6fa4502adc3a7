"""Read-only workload probes for dmngr."""

from datetime import datetime
from typing import Optional, Tuple

import urllib3
from dateutil import parser as date_parser

from dmngr.errors import NotFoundError, ParseError
from dmngr.errors_catalog import actionable_error
from dmngr.models import WorkloadKind


def monitored_container(workload, kind: WorkloadKind):
    """Return the pod template container that carries the monitored image."""
    containers = workload.spec.template.spec.containers or []
    index = kind.container_index
    if len(containers) <= index:
        raise NotFoundError(
            actionable_error(
                "missing_container",
                kind=kind.value,
                name=workload.metadata.name,
                index=str(index),
            )
        )
    return containers[index]


class ProbeService:
    """Answers "when did this last restart/update/see a user" for one context."""

    LOG_CHUNK_SIZE = 4096
    MAX_LINE_BYTES = 64 * 1024
    DEFAULT_CONTAINER = "backend"
    DEFAULT_ACTIVITY_MARKER = '"UserID"'

    def __init__(
        self,
        logger,
        container: str = DEFAULT_CONTAINER,
        activity_marker: str = DEFAULT_ACTIVITY_MARKER,
    ):
        self.logger = logger
        self.container = container
        self.activity_marker = activity_marker

    def restart_time(self, gateway, namespace: str, pod_name: str) -> datetime:
        pod = gateway.get_pod(namespace, pod_name)
        if pod.status is not None and pod.status.start_time is not None:
            return pod.status.start_time
        return pod.metadata.creation_timestamp

    def last_image_update(self, gateway, namespace: str, name: str, kind) -> Tuple[datetime, str]:
        """Return the workload's creation time and its monitored image.

        The creation timestamp only tracks image changes for workloads that are
        recreated on every release; an in-place patch leaves it untouched.
        """
        kind = WorkloadKind.parse(kind)
        workload = gateway.get_workload(namespace, name, kind)
        container = monitored_container(workload, kind)
        return workload.metadata.creation_timestamp, container.image

    def last_log_time(self, gateway, namespace: str, pod_name: str) -> datetime:
        """Timestamp of the last log line that records user activity.

        The line kept is the last one read, not the newest timestamp seen.
        Lines longer than ``MAX_LINE_BYTES`` are only searched up to that length.
        """
        stream = gateway.stream_pod_logs(namespace, pod_name, self.container, timestamps=True)
        try:
            last_match = self._scan_for_marker(stream, pod_name)
        finally:
            stream.close()
            release_conn = getattr(stream, "release_conn", None)
            if release_conn is not None:
                release_conn()

        if last_match is None:
            raise ParseError(
                f"No log line containing {self.activity_marker} in {namespace}/{pod_name}."
            )
        return self.parse_log_timestamp(last_match)

    def _scan_for_marker(self, stream, pod_name: str) -> Optional[str]:
        marker = self.activity_marker.encode("utf-8")
        pending = b""
        last_match: Optional[bytes] = None
        # Set while skipping the rest of a line cut at MAX_LINE_BYTES.
        discarding = False

        while True:
            try:
                chunk = stream.read(self.LOG_CHUNK_SIZE)
            except (urllib3.exceptions.HTTPError, OSError) as exc:
                self.logger.debug("Stopped reading logs of %s: %s", pod_name, exc)
                break
            if not chunk:
                break

            if discarding:
                newline = chunk.find(b"\n")
                if newline < 0:
                    continue
                chunk = chunk[newline + 1 :]
                discarding = False

            pending += chunk
            *lines, pending = pending.split(b"\n")
            for line in lines:
                if marker in line:
                    last_match = line

            if len(pending) > self.MAX_LINE_BYTES:
                head = pending[: self.MAX_LINE_BYTES]
                if marker in head:
                    last_match = head
                self.logger.debug("Cut a log line of %s at %s bytes", pod_name, self.MAX_LINE_BYTES)
                pending = b""
                discarding = True

        if marker in pending:
            last_match = pending

        if last_match is None:
            return None
        return last_match.decode("utf-8", errors="replace").strip()

    @staticmethod
    def parse_log_timestamp(line: str) -> datetime:
        token = line.split(" ", 1)[0]
        try:
            # Kubernetes prefixes lines with RFC3339 timestamps in nanoseconds.
            return date_parser.isoparse(token)
        except (ValueError, OverflowError) as exc:
            raise ParseError(f"Invalid log timestamp '{token}': {exc}") from exc
