"""All-pairs shortest-path trees over a topology snapshot.

Every link costs 1, so the distances count switch hops. For each source
switch a Dijkstra run records, for every switch, the upstream neighbor on the
shortest path from that source:

    {1: {1: ROOT, 2: 1, 3: 2},
     2: {1: 2, 2: ROOT, 3: 2},
     3: {1: 2, 2: 3, 3: ROOT}}

Among equally close frontier switches the one with the lowest id is settled
first, so the trees are identical from run to run.
"""

import enum
import logging
import math
from types import MappingProxyType

from spf.topology import TopologySnapshot

LOG = logging.getLogger(__name__)

INFINITY = math.inf
LINK_COST = 1


class TreeMarker(enum.Enum):
    ROOT = "root"
    UNREACHABLE = "unreachable"

    def __repr__(self):
        return self.name


ROOT = TreeMarker.ROOT
UNREACHABLE = TreeMarker.UNREACHABLE


class SnapshotRequiredError(TypeError):
    pass


class RoutingTable:
    """Immutable source -> parent tree mapping produced by one recompute."""

    def __init__(self, trees=None, distances=None, snapshot=None):
        self._trees = MappingProxyType(
            {src: MappingProxyType(dict(tree)) for src, tree in (trees or {}).items()})
        self._distances = MappingProxyType(
            {src: MappingProxyType(dict(dist)) for src, dist in (distances or {}).items()})
        self.snapshot = snapshot if snapshot is not None else TopologySnapshot()

    @classmethod
    def empty(cls):
        return cls()

    @property
    def trees(self):
        return self._trees

    def tree(self, src):
        return self._trees[src]

    def parent(self, src, node):
        return self._trees[src][node]

    def distance(self, src, dst):
        """Hop count from src to dst, or math.inf when dst is unreachable."""
        return self._distances.get(src, {}).get(dst, INFINITY)

    def path(self, src, dst):
        """Switches from src to dst following the parent chain, or None."""
        tree = self._trees.get(src)
        if tree is None or dst not in tree:
            return None
        path = [dst]
        node = tree[dst]
        while node is not ROOT:
            if node is UNREACHABLE or len(path) > len(tree):
                return None
            path.append(node)
            node = tree[node]
        path.reverse()
        return path

    def sources(self):
        return sorted(self._trees)

    def __getitem__(self, src):
        return self._trees[src]

    def __contains__(self, src):
        return src in self._trees

    def __iter__(self):
        return iter(self.sources())

    def __len__(self):
        return len(self._trees)

    def __bool__(self):
        return bool(self._trees)

    def __repr__(self):
        return "RoutingTable(%d sources)" % len(self._trees)


# getting the node with lowest distance in the frontier, lowest id on ties
def minimum_distance(distance, frontier):
    node = None
    min_val = INFINITY
    for v in frontier:
        d = distance[v]
        if d < min_val or (d == min_val and node is not None and v < node):
            min_val = d
            node = v
    return node


class PathEngine:
    """Stateless per-source Dijkstra with unit link costs."""

    def compute_tree(self, snapshot, source, adjacency=None):
        """Return (parents, distances) for the tree rooted at source."""
        _require_snapshot(snapshot)
        if adjacency is None:
            adjacency = snapshot.adjacency()

        distance = {}
        parent = {}
        for dpid in snapshot.switches:
            distance[dpid] = INFINITY
            parent[dpid] = UNREACHABLE
        if source not in distance:
            return parent, distance

        distance[source] = 0
        parent[source] = ROOT

        frontier = set(snapshot.switches)
        while frontier:
            u = minimum_distance(distance, frontier)
            if u is None:
                # only unreachable switches remain
                break
            frontier.remove(u)
            for adj in adjacency.get(u, ()):
                if adj not in frontier:
                    continue
                if distance[u] + LINK_COST < distance[adj]:
                    distance[adj] = distance[u] + LINK_COST
                    parent[adj] = u
        return parent, distance

    def compute_all(self, snapshot):
        _require_snapshot(snapshot)
        if not snapshot.switches:
            return RoutingTable.empty()

        adjacency = snapshot.adjacency()
        trees = {}
        distances = {}
        for source in snapshot.sorted_switches():
            trees[source], distances[source] = self.compute_tree(snapshot, source, adjacency)
        LOG.debug("computed %d shortest-path trees over %d links",
                  len(trees), len(snapshot.links))
        return RoutingTable(trees, distances, snapshot)


def _require_snapshot(snapshot):
    if not isinstance(snapshot, TopologySnapshot):
        raise SnapshotRequiredError(
            "expected a TopologySnapshot, got %s" % type(snapshot).__name__)
