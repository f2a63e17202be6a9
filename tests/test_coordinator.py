import threading

from spf.config import SwitchingConfig
from spf.coordinator import Host, LinkUpdate, RoutingCoordinator
from spf.path_engine import ROOT, UNREACHABLE, PathEngine
from spf.topology import Link


class CountingEngine(PathEngine):

    def __init__(self):
        self.calls = 0

    def compute_all(self, snapshot):
        self.calls += 1
        return super(CountingEngine, self).compute_all(snapshot)


def both_ways(a, b):
    return [LinkUpdate(Link(a, b, b, a)), LinkUpdate(Link(b, a, a, b))]


def build_line(coordinator):
    for dpid in (1, 2, 3):
        coordinator.switch_added(dpid)
    coordinator.links_updated(both_ways(1, 2) + both_ways(2, 3))


def test_switch_and_link_events_refresh_the_table():
    coordinator = RoutingCoordinator()
    updates = []
    coordinator.add_listener(updates.append)

    build_line(coordinator)

    table = coordinator.table
    assert dict(table.tree(1)) == {1: ROOT, 2: 1, 3: 2}
    assert [u.trigger for u in updates] == ["switch-added"] * 3 + ["links-updated"]
    assert updates[-1].table is table
    assert coordinator.cache.generation == 4


def test_switch_removal_drops_its_links():
    coordinator = RoutingCoordinator()
    build_line(coordinator)

    coordinator.switch_removed(2)

    table = coordinator.table
    assert set(table.sources()) == {1, 3}
    assert table.parent(1, 3) is UNREACHABLE
    assert coordinator.graph.links() == []


def test_link_down_recomputes():
    coordinator = RoutingCoordinator()
    build_line(coordinator)

    coordinator.links_updated([LinkUpdate(Link(2, 3, 3, 2), up=False)])

    assert coordinator.table.parent(1, 3) is UNREACHABLE
    assert coordinator.table.parent(3, 1) == 2


def test_noop_events_do_not_recompute():
    engine = CountingEngine()
    coordinator = RoutingCoordinator(engine=engine)
    build_line(coordinator)
    calls = engine.calls

    assert coordinator.switch_added(1) is None
    assert coordinator.switch_removed(42) is None
    assert coordinator.links_updated([LinkUpdate(Link(1, 9, 3, 9), up=False)]) is None
    assert coordinator.links_updated(both_ways(1, 2)) is None
    assert engine.calls == calls


def test_resync_replaces_graph_from_providers():
    engine = CountingEngine()
    coordinator = RoutingCoordinator(engine=engine)
    build_line(coordinator)

    links = [Link(1, 3, 3, 1), Link(3, 1, 1, 3)]
    table = coordinator.resync([1, 3], links)

    assert dict(table.tree(1)) == {1: ROOT, 3: 1}
    calls = engine.calls
    assert coordinator.resync([3, 1], reversed(links)) is None
    assert engine.calls == calls


def test_host_events_do_not_recompute_by_default():
    engine = CountingEngine()
    coordinator = RoutingCoordinator(engine=engine)
    build_line(coordinator)
    before = coordinator.table
    calls = engine.calls
    updates = []
    coordinator.add_listener(updates.append)

    host = Host("00:00:00:00:00:01", "10.0.0.1", 1, 1)
    coordinator.host_added(host)
    coordinator.host_moved(Host(host.mac, host.ipv4, 3, 1))
    coordinator.host_ip_changed(Host(host.mac, "10.0.0.9", 3, 1))
    coordinator.host_removed(Host(host.mac))

    assert engine.calls == calls
    assert coordinator.table is before
    assert [u.trigger for u in updates] == [
        "host-added", "host-moved", "host-ip-changed", "host-removed"]
    assert all(u.table is before and not u.recomputed for u in updates)
    assert updates[0].host == host


def test_host_events_recompute_when_configured():
    engine = CountingEngine()
    coordinator = RoutingCoordinator(SwitchingConfig(recompute_on_host_events=True), engine=engine)
    build_line(coordinator)
    before = coordinator.table
    calls = engine.calls

    table = coordinator.host_added(Host("00:00:00:00:00:01", "10.0.0.1", 1, 1))

    assert engine.calls == calls + 1
    assert table is not before
    assert dict(table.tree(1)) == dict(before.tree(1))


def test_detached_move_is_reported_as_removal():
    coordinator = RoutingCoordinator()
    updates = []
    coordinator.add_listener(updates.append)

    coordinator.host_moved(Host("00:00:00:00:00:02"))

    assert updates[0].trigger == "host-removed"


def test_failing_listener_does_not_block_others(caplog):
    coordinator = RoutingCoordinator()
    seen = []

    def broken(update):
        raise RuntimeError("boom")

    coordinator.add_listener(broken)
    coordinator.add_listener(seen.append)
    coordinator.switch_added(1)

    assert len(seen) == 1
    assert "routing listener" in caplog.text

    coordinator.remove_listener(broken)
    coordinator.switch_added(2)
    assert len(seen) == 2


def test_concurrent_events_leave_a_consistent_table():
    coordinator = RoutingCoordinator()

    def add_ring(offset):
        for i in range(10):
            a = offset + i
            b = offset + (i + 1) % 10
            coordinator.switch_added(a)
            coordinator.switch_added(b)
            coordinator.links_updated(both_ways(a, b))

    threads = [threading.Thread(target=add_ring, args=(offset,)) for offset in (0, 100, 200)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    table = coordinator.table
    assert set(table.sources()) == set(coordinator.graph.switches())
    assert len(table) == 30
    assert table.distance(0, 5) == 5
    assert table.parent(0, 100) is UNREACHABLE


def test_recompute_dumps_topology_at_debug(caplog):
    coordinator = RoutingCoordinator()

    with caplog.at_level("DEBUG", logger="spf.coordinator"):
        build_line(coordinator)

    assert "[TOPO-DUMP] after links-updated: switches s1, s2, s3" in caplog.text
    assert "link s1:2 -> s2:1" in caplog.text
