"""Shortest-path switching controller (OS-Ken).

Listens to the os-ken topology events (switches, links, hosts), keeps the
routing coordinator's graph in sync with them and reprograms the switches
along the recomputed shortest-path trees whenever the table changes.

Run with link discovery enabled:

    osken-manager --observe-links spf.controller
"""

from os_ken.base import app_manager
from os_ken.controller import ofp_event
from os_ken.controller.handler import CONFIG_DISPATCHER, MAIN_DISPATCHER
from os_ken.controller.handler import set_ev_cls
from os_ken.lib.packet import ether_types
from os_ken.lib.packet import ethernet
from os_ken.lib.packet import packet
from os_ken.ofproto import ofproto_v1_3
from os_ken.topology import event
from os_ken.topology.api import get_switch, get_link

from spf.config import SwitchingConfig
from spf.coordinator import Host, LinkUpdate, RoutingCoordinator
from spf.installer import FlowInstaller
from spf.topology import Link


def link_from(os_link):
    return Link(os_link.src.dpid, os_link.src.port_no, os_link.dst.dpid, os_link.dst.port_no)


def host_from(os_host, attached=True):
    ipv4 = os_host.ipv4[0] if os_host.ipv4 else None
    if not attached or os_host.port is None:
        return Host(os_host.mac, ipv4)
    return Host(os_host.mac, ipv4, os_host.port.dpid, os_host.port.port_no)


class ShortestPathSwitching(app_manager.OSKenApp):
    OFP_VERSIONS = [ofproto_v1_3.OFP_VERSION]

    def __init__(self, *args, **kwargs):
        config = kwargs.pop("config", None) or SwitchingConfig()
        super(ShortestPathSwitching, self).__init__(*args, **kwargs)
        self.topology_api_app = self
        self.config = config
        self.datapaths = {}
        # hosts[mac] -> Host
        self.hosts = {}
        self.coordinator = RoutingCoordinator(config)
        self.installer = FlowInstaller(config, self.logger)
        self.coordinator.add_listener(self.on_routing_update)

    @property
    def routing_table(self):
        return self.coordinator.table

    def on_routing_update(self, update):
        attached = [host for host in self.hosts.values() if host.is_attached]
        count = self.installer.reinstall(update, attached, self.datapaths)
        self.logger.debug("routing update (%s): %d path(s) reinstalled", update.trigger, count)

    @set_ev_cls(ofp_event.EventOFPSwitchFeatures, CONFIG_DISPATCHER)
    def switch_features_handler(self, ev):
        self.installer.install_table_miss(ev.msg.datapath)

    @set_ev_cls(ofp_event.EventOFPPacketIn, MAIN_DISPATCHER)
    def packet_in_handler(self, ev):
        msg = ev.msg
        datapath = msg.datapath
        ofproto = datapath.ofproto
        in_port = msg.match['in_port']
        eth = packet.Packet(msg.data).get_protocol(ethernet.ethernet)
        if eth is None:
            return
        # avoid broadcasts from LLDP and IPv6 neighbour discovery
        if eth.ethertype in (ether_types.ETH_TYPE_LLDP, ether_types.ETH_TYPE_IPV6):
            return

        src_host = self.hosts.get(eth.src) or Host(eth.src, None, datapath.id, in_port)
        dst_host = self.hosts.get(eth.dst)
        p = None
        if dst_host is not None:
            p = self.installer.hops(self.routing_table, src_host, dst_host)
        if p is None:
            # destination unknown or unreachable: fall back to flooding
            self.logger.debug("[PKT-FLOOD] %s -> %s: flooding", eth.src, eth.dst)
            out_port = ofproto.OFPP_FLOOD
        else:
            self.installer.install_path(self.datapaths, p, eth.src, eth.dst)
            out_port = p[0][2]
        self.installer.packet_out(datapath, msg, in_port, out_port)

    @set_ev_cls(ofp_event.EventOFPFlowRemoved, MAIN_DISPATCHER)
    def flow_removed_handler(self, ev):
        match = ev.msg.match
        src_mac = match.get('eth_src')
        dst_mac = match.get('eth_dst')
        if src_mac and dst_mac:
            self.installer.flow_removed(src_mac, dst_mac)

    @set_ev_cls(event.EventSwitchEnter)
    def switch_enter_handler(self, ev):
        datapath = ev.switch.dp
        self.datapaths[datapath.id] = datapath
        self.coordinator.switch_added(datapath.id)

    @set_ev_cls(event.EventSwitchLeave)
    def switch_leave_handler(self, ev):
        dpid = ev.switch.dp.id
        self.datapaths.pop(dpid, None)
        self.coordinator.switch_removed(dpid)

    @set_ev_cls(event.EventLinkAdd)
    def link_add_handler(self, ev):
        self.coordinator.links_updated([LinkUpdate(link_from(ev.link), up=True)])

    @set_ev_cls(event.EventLinkDelete)
    def link_delete_handler(self, ev):
        self.coordinator.links_updated([LinkUpdate(link_from(ev.link), up=False)])

    @set_ev_cls([event.EventPortDelete, event.EventPortModify])
    def port_change_handler(self, ev):
        # a port going away can take links with it before any link event arrives
        switch_list = get_switch(self.topology_api_app, None)
        links_list = get_link(self.topology_api_app, None)
        for switch in switch_list:
            self.datapaths[switch.dp.id] = switch.dp
        self.coordinator.resync([switch.dp.id for switch in switch_list],
                                [link_from(link) for link in links_list])

    @set_ev_cls(event.EventHostAdd)
    def host_add_handler(self, ev):
        host = host_from(ev.host)
        # we only care about a new host once we know its IP
        if host.ipv4 is None:
            self.logger.debug("[HOST-LEARN] ignoring %s until its IPv4 address is known", host.mac)
            return
        known = self.hosts.get(host.mac)
        self.hosts[host.mac] = host
        # os-ken raises EventHostAdd once per MAC and updates addresses in
        # place, so this branch only fires if the host was deleted in between
        if known is not None and known.ipv4 != host.ipv4:
            self.coordinator.host_ip_changed(host)
        else:
            self.coordinator.host_added(host)

    @set_ev_cls(event.EventHostMove)
    def host_move_handler(self, ev):
        host = host_from(ev.dst)
        # flows along the old attachment point must not survive the move
        self.installer.remove_host(self.datapaths, host.mac)
        if host.ipv4 is None and host.mac not in self.hosts:
            return
        if host.ipv4 is None:
            host = Host(host.mac, self.hosts[host.mac].ipv4, host.switch, host.port)
        self.hosts[host.mac] = host
        self.coordinator.host_moved(host)

    @set_ev_cls(event.EventHostDelete)
    def host_delete_handler(self, ev):
        host = host_from(ev.host, attached=False)
        self.hosts.pop(host.mac, None)
        self.coordinator.host_removed(host)
