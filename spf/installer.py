"""Programs forwarding rules along the cached shortest-path trees.

A path from host A to host B is read out of the tree rooted at A's switch by
walking parents back from B's switch, then turned into per-switch
(dpid, in_port, out_port) hops using the ports of the links it crosses.
"""

import logging
from itertools import permutations

from spf.config import SwitchingConfig

LOG = logging.getLogger(__name__)


class FlowInstaller:

    def __init__(self, config=None, logger=None):
        self.config = config or SwitchingConfig()
        self.logger = logger or LOG
        # keep last installed paths to avoid noisy re-install logging
        self.installed_paths = {}

    def hops(self, table, src_host, dst_host):
        """Return [(dpid, in_port, out_port), ...] from src_host to dst_host, or None."""
        if not (src_host.is_attached and dst_host.is_attached):
            return None
        path = table.path(src_host.switch, dst_host.switch)
        if path is None:
            return None

        result = []
        in_port = src_host.port
        for s1, s2 in zip(path[:-1], path[1:]):
            link = table.snapshot.link_between(s1, s2)
            if link is None:
                return None
            result.append((s1, in_port, link.src_port))
            in_port = link.dst_port
        result.append((dst_host.switch, in_port, dst_host.port))
        return result

    def install_table_miss(self, datapath):
        ofproto = datapath.ofproto
        parser = datapath.ofproto_parser
        # match anything and send it to the controller without buffering
        match = parser.OFPMatch()
        actions = [parser.OFPActionOutput(ofproto.OFPP_CONTROLLER, ofproto.OFPCML_NO_BUFFER)]
        inst = [parser.OFPInstructionActions(ofproto.OFPIT_APPLY_ACTIONS, actions)]
        mod = parser.OFPFlowMod(
            datapath=datapath, match=match, cookie=0,
            command=ofproto.OFPFC_ADD, idle_timeout=0, hard_timeout=0,
            priority=self.config.table_miss_priority, instructions=inst)
        datapath.send_msg(mod)

    def install_path(self, datapaths, p, src_mac, dst_mac, reverse=None):
        """Install p on every switch it crosses; returns False if unchanged.

        Switches that carried the previous path for this pair but are not on
        p any more get their flows for the pair deleted.
        """
        key = (src_mac, dst_mac)
        previous = self.installed_paths.get(key)
        if previous == p:
            return False
        self.installed_paths[key] = p
        if len(p) > 1:
            self.logger.info("[FLOW-INSTALL] %s -> %s: installed path %s",
                             src_mac, dst_mac, " -> ".join(str(sw) for sw, _, _ in p))

        if previous:
            on_path = {sw for sw, _, _ in p}
            for sw in {sw for sw, _, _ in previous} - on_path:
                self._delete_flows(datapaths.get(sw), eth_src=src_mac, eth_dst=dst_mac)

        for sw, in_port, out_port in p:
            self._replace_flow(datapaths, sw, in_port, out_port, src_mac, dst_mac)
        if reverse is None:
            reverse = self.config.install_reverse_paths
        if reverse:
            # packets come back in on the forward out_port and leave on the forward in_port
            for sw, in_port, out_port in reversed(p):
                self._replace_flow(datapaths, sw, out_port, in_port, dst_mac, src_mac)
        return True

    def forget(self, mac):
        for key in [key for key in self.installed_paths if mac in key]:
            del self.installed_paths[key]

    def flow_removed(self, src_mac, dst_mac):
        """A switch expired a flow of this pair; install the path again next time."""
        self.installed_paths.pop((src_mac, dst_mac), None)
        # the reverse flows were installed along with the forward path
        self.installed_paths.pop((dst_mac, src_mac), None)

    def remove_host(self, datapaths, mac):
        """Delete every flow to or from mac on every switch; returns FlowMods sent."""
        self.forget(mac)
        sent = 0
        for datapath in datapaths.values():
            sent += self._delete_flows(datapath, eth_dst=mac)
            sent += self._delete_flows(datapath, eth_src=mac)
        if sent:
            self.logger.info("[FLOW-INSTALL] removed flows for host %s", mac)
        return sent

    def reinstall(self, update, hosts, datapaths):
        """Re-derive and install paths for every ordered pair of attached hosts."""
        if update.host is not None and not update.host.is_attached:
            self.remove_host(datapaths, update.host.mac)
        installed = 0
        for src_host, dst_host in permutations(hosts, 2):
            p = self.hops(update.table, src_host, dst_host)
            if p is None:
                if src_host.is_attached and dst_host.is_attached:
                    self.logger.debug("no path from %s to %s", src_host.name, dst_host.name)
                continue
            # directed links: only mirror the path when the way back exists too
            reverse = (self.config.install_reverse_paths
                       and self.hops(update.table, dst_host, src_host) is not None)
            if self.install_path(datapaths, p, src_host.mac, dst_host.mac, reverse=reverse):
                installed += 1
        return installed

    def packet_out(self, datapath, msg, in_port, out_port):
        ofproto = datapath.ofproto
        parser = datapath.ofproto_parser
        actions = [parser.OFPActionOutput(out_port)]
        data = None
        if msg.buffer_id == ofproto.OFP_NO_BUFFER:
            data = msg.data
        out = parser.OFPPacketOut(datapath=datapath, buffer_id=msg.buffer_id, in_port=in_port,
                                  actions=actions, data=data)
        datapath.send_msg(out)

    def _replace_flow(self, datapaths, sw, in_port, out_port, src_mac, dst_mac):
        datapath = datapaths.get(sw)
        if datapath is None:
            self.logger.warning("datapath with id %s not found", sw)
            return
        parser = datapath.ofproto_parser
        ofproto = datapath.ofproto
        match = parser.OFPMatch(in_port=in_port, eth_src=src_mac, eth_dst=dst_mac)
        actions = [parser.OFPActionOutput(out_port)]
        inst = [parser.OFPInstructionActions(ofproto.OFPIT_APPLY_ACTIONS, actions)]
        # remove any existing flow with the same match before adding the new one
        delete_mod = parser.OFPFlowMod(datapath=datapath, match=match,
                                       command=ofproto.OFPFC_DELETE,
                                       out_port=ofproto.OFPP_ANY, out_group=ofproto.OFPG_ANY,
                                       priority=self.config.flow_priority)
        datapath.send_msg(delete_mod)
        flags = 0
        if self.config.idle_timeout or self.config.hard_timeout:
            # expiring flows must be reported so the path gets installed again
            flags = ofproto.OFPFF_SEND_FLOW_REM
        mod = parser.OFPFlowMod(datapath=datapath, match=match,
                                idle_timeout=self.config.idle_timeout,
                                hard_timeout=self.config.hard_timeout,
                                priority=self.config.flow_priority, flags=flags,
                                instructions=inst)
        datapath.send_msg(mod)

    def _delete_flows(self, datapath, **fields):
        if datapath is None:
            return 0
        parser = datapath.ofproto_parser
        ofproto = datapath.ofproto
        mod = parser.OFPFlowMod(datapath=datapath, match=parser.OFPMatch(**fields),
                                command=ofproto.OFPFC_DELETE,
                                out_port=ofproto.OFPP_ANY, out_group=ofproto.OFPG_ANY)
        datapath.send_msg(mod)
        return 1
