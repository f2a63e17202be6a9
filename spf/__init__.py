"""Shortest-path switching: topology graph, all-pairs path trees and routing cache."""

from spf.config import SwitchingConfig
from spf.coordinator import Host, LinkUpdate, RoutingCoordinator, RoutingUpdate
from spf.path_engine import (
    ROOT,
    UNREACHABLE,
    PathEngine,
    RoutingTable,
    SnapshotRequiredError,
    TreeMarker,
)
from spf.routing_cache import RoutingTableCache
from spf.topology import Link, TopologyGraph, TopologySnapshot

__all__ = [
    "Host",
    "Link",
    "LinkUpdate",
    "PathEngine",
    "ROOT",
    "RoutingCoordinator",
    "RoutingTable",
    "RoutingTableCache",
    "RoutingUpdate",
    "SnapshotRequiredError",
    "SwitchingConfig",
    "TopologyGraph",
    "TopologySnapshot",
    "TreeMarker",
    "UNREACHABLE",
]
