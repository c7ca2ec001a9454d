"""Read-only cluster report for `k2 list`."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, List, Optional, TextIO

from k2cli.models import ClusterInfo
from k2cli.sink import Verbosity

if TYPE_CHECKING:
    from k2cli.broker import BrokerClient


def format_cluster(cluster: ClusterInfo, verbosity: Verbosity) -> List[str]:
    lines: List[str] = []
    if verbosity >= Verbosity.LOUD:
        lines += [
            "Cluster information:",
            f"  Broker count: {cluster.broker_count}",
            f"  Topics count: {len(cluster.topics)}",
            f"  Metadata broker name: {cluster.orig_broker_name}",
            f"  Metadata broker id: {cluster.orig_broker_id}",
            "",
        ]

    lines += ["", "Topics:"]
    for name in sorted(cluster.topics):
        topic = cluster.topics[name]
        line = f"  {name}"
        if topic.error is not None:
            line += f" Err: {topic.error}"
        lines.append(line)
        if verbosity >= Verbosity.LOUD:
            for p in topic.partitions:
                lines.append(
                    f"    Partition: {p.id}  Leader: {p.leader}  Replicas: {list(p.replicas)}  "
                    f"ISR: {list(p.isrs)}  Err: {p.error}"
                )
    return lines


def list_cluster(broker: "BrokerClient", timeout: float, verbosity: Verbosity, stream: Optional[TextIO] = None) -> None:
    """Fetch metadata for every topic and print it. MetadataError propagates."""
    out: TextIO = stream or sys.stdout
    cluster = broker.fetch_metadata(None, timeout)
    for line in format_cluster(cluster, verbosity):
        print(line, file=out)
