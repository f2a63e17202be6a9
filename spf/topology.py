"""Switch/link topology graph.

The graph is keyed by numeric datapath ids only, so it outlives any os-ken
switch handle. Every mutation and every snapshot takes the same lock, and a
snapshot is a pair of frozensets, so a reader can never see a half-applied
update.
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class Link:
    """Directed unit-cost link (src, src_port) -> (dst, dst_port)."""

    src: int
    src_port: int
    dst: int
    dst_port: int

    def reverse(self):
        return Link(self.dst, self.dst_port, self.src, self.src_port)

    def touches(self, dpid):
        return self.src == dpid or self.dst == dpid

    def __str__(self):
        return "s%d:%d -> s%d:%d" % (self.src, self.src_port, self.dst, self.dst_port)


@dataclass(frozen=True)
class TopologySnapshot:
    """Point-in-time view of the graph handed to the path engine."""

    switches: frozenset = frozenset()
    links: frozenset = frozenset()

    def sorted_switches(self):
        return sorted(self.switches)

    def adjacency(self):
        """Map dpid -> {neighbor dpid: link}, skipping links to unknown switches."""
        adjacency = {dpid: {} for dpid in self.switches}
        for link in sorted(self.links):
            if link.src not in self.switches or link.dst not in self.switches:
                LOG.warning("[TOPO-CHANGE] skipping stale link %s", link)
                continue
            # parallel links between the same pair keep the lowest ports
            adjacency[link.src].setdefault(link.dst, link)
        return adjacency

    def link_between(self, src, dst):
        candidates = [link for link in self.links if link.src == src and link.dst == dst]
        return min(candidates) if candidates else None

    def __len__(self):
        return len(self.switches)


class TopologyGraph:
    """Mutable switch and link sets shared between event handlers."""

    def __init__(self):
        self._lock = threading.Lock()
        self._switches = set()
        self._links = set()
        self._links_by_switch = defaultdict(set)

    def add_switch(self, dpid):
        with self._lock:
            if dpid in self._switches:
                return False
            self._switches.add(dpid)
        return True

    def remove_switch(self, dpid):
        """Remove a switch together with every link touching it."""
        with self._lock:
            if dpid not in self._switches:
                LOG.debug("ignoring removal of unknown switch %s", dpid)
                return False
            self._switches.discard(dpid)
            for link in list(self._links_by_switch.pop(dpid, ())):
                self._forget_link(link)
        return True

    def add_link(self, link):
        with self._lock:
            if link in self._links:
                return False
            self._links.add(link)
            self._links_by_switch[link.src].add(link)
            self._links_by_switch[link.dst].add(link)
        return True

    def remove_link(self, link):
        with self._lock:
            if link not in self._links:
                return False
            self._forget_link(link)
        return True

    def replace(self, dpids, links):
        """Reset the whole graph from the switch and link providers."""
        with self._lock:
            self._switches = set(dpids)
            self._links = set()
            self._links_by_switch = defaultdict(set)
            for link in links:
                self._links.add(link)
                self._links_by_switch[link.src].add(link)
                self._links_by_switch[link.dst].add(link)

    def snapshot(self):
        with self._lock:
            return TopologySnapshot(frozenset(self._switches), frozenset(self._links))

    def switches(self):
        with self._lock:
            return sorted(self._switches)

    def links(self):
        with self._lock:
            return sorted(self._links)

    def __len__(self):
        with self._lock:
            return len(self._switches)

    def _forget_link(self, link):
        # caller holds the lock
        self._links.discard(link)
        for dpid in (link.src, link.dst):
            bucket = self._links_by_switch.get(dpid)
            if bucket is not None:
                bucket.discard(link)
                if not bucket:
                    del self._links_by_switch[dpid]
