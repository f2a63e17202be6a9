"""Turns topology and host notifications into routing table updates.

Every notification goes through one lock: mutate the graph, snapshot it,
recompute all trees, swap the cache, then tell the listeners. A recompute
therefore always sees a whole graph, and whichever trigger finishes last
leaves its table in the cache.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from spf.config import SwitchingConfig
from spf.path_engine import PathEngine, RoutingTable
from spf.routing_cache import RoutingTableCache
from spf.topology import Link, TopologyGraph

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class Host:
    """End host as reported by the device provider; never a graph node."""

    mac: str
    ipv4: Optional[str] = None
    switch: Optional[int] = None
    port: Optional[int] = None

    @property
    def is_attached(self):
        return self.switch is not None and self.port is not None

    @property
    def name(self):
        return self.ipv4 or self.mac


@dataclass(frozen=True)
class LinkUpdate:
    link: Link
    up: bool = True


@dataclass(frozen=True)
class RoutingUpdate:
    """What listeners receive after a recompute or a host event."""

    table: RoutingTable
    trigger: str
    host: Optional[Host] = None
    recomputed: bool = True


class RoutingCoordinator:

    def __init__(self, config=None, graph=None, engine=None, cache=None):
        self.config = config or SwitchingConfig()
        self.graph = graph if graph is not None else TopologyGraph()
        self.engine = engine if engine is not None else PathEngine()
        self.cache = cache if cache is not None else RoutingTableCache()
        self._lock = threading.RLock()
        self._listeners = []

    @property
    def table(self):
        return self.cache.get()

    def add_listener(self, hook):
        with self._lock:
            if hook not in self._listeners:
                self._listeners.append(hook)

    def remove_listener(self, hook):
        with self._lock:
            if hook in self._listeners:
                self._listeners.remove(hook)

    # switch and link events

    def switch_added(self, dpid):
        with self._lock:
            if not self.graph.add_switch(dpid):
                return None
            LOG.info("[TOPO-CHANGE] Switch s%d added", dpid)
            return self.recompute("switch-added")

    def switch_removed(self, dpid):
        with self._lock:
            if not self.graph.remove_switch(dpid):
                return None
            LOG.info("[TOPO-CHANGE] Switch s%d removed", dpid)
            return self.recompute("switch-removed")

    def links_updated(self, updates):
        """Apply one or more link state changes, then recompute once."""
        with self._lock:
            changed = False
            for update in updates:
                if update.up:
                    applied = self.graph.add_link(update.link)
                else:
                    applied = self.graph.remove_link(update.link)
                if applied:
                    LOG.info("[TOPO-CHANGE] Link %s: %s",
                             "up" if update.up else "down", update.link)
                changed |= applied
            if not changed:
                return None
            return self.recompute("links-updated")

    def resync(self, dpids, links):
        """Replace the graph with what the providers currently report."""
        with self._lock:
            snapshot = self.graph.snapshot()
            dpids = frozenset(dpids)
            links = frozenset(links)
            if snapshot.switches == dpids and snapshot.links == links:
                return None
            self.graph.replace(dpids, links)
            LOG.info("[TOPO-CHANGE] Resynced topology: %d switches, %d links",
                     len(dpids), len(links))
            return self.recompute("resync")

    def recompute(self, trigger="manual"):
        with self._lock:
            snapshot = self.graph.snapshot()
            table = self.engine.compute_all(snapshot)
            self.cache.set(table)
            if LOG.isEnabledFor(logging.DEBUG):
                self._log_topology(snapshot, trigger)
            update = RoutingUpdate(table, trigger)
            self._notify(update)
            return table

    # host events

    def host_added(self, host):
        LOG.info("[HOST-LEARN] Host %s added at s%s:%s", host.name, host.switch, host.port)
        return self._host_event("host-added", host)

    def host_moved(self, host):
        if not host.is_attached:
            return self.host_removed(host)
        LOG.info("[HOST-LEARN] Host %s moved to s%d:%d", host.name, host.switch, host.port)
        return self._host_event("host-moved", host)

    def host_removed(self, host):
        LOG.info("[HOST-LEARN] Host %s is no longer attached to a switch", host.name)
        return self._host_event("host-removed", host)

    def host_ip_changed(self, host):
        LOG.info("[HOST-LEARN] Host %s changed address", host.name)
        return self._host_event("host-ip-changed", host)

    def _host_event(self, trigger, host):
        with self._lock:
            if self.config.recompute_on_host_events:
                table = self.engine.compute_all(self.graph.snapshot())
                self.cache.set(table)
                update = RoutingUpdate(table, trigger, host)
            else:
                update = RoutingUpdate(self.cache.get(), trigger, host, recomputed=False)
            self._notify(update)
            return update.table

    def _log_topology(self, snapshot, trigger):
        LOG.debug("[TOPO-DUMP] after %s: switches %s",
                  trigger, ", ".join("s%d" % dpid for dpid in snapshot.sorted_switches()) or "-")
        for link in sorted(snapshot.links):
            LOG.debug("[TOPO-DUMP]   link %s", link)

    def _notify(self, update):
        for hook in list(self._listeners):
            try:
                hook(update)
            except Exception:
                LOG.exception("routing listener %r failed on %s", hook, update.trigger)
