"""oslo.config options for deployments configured through INI files.

The standalone agent reads a YAML file (see :mod:`podnet_agent.config`);
these options let the same settings come from an oslo.config file instead.
"""

from oslo_config import cfg

from podnet_ipam.models import IPFamily, Network, NetworkType, Subnet

IPAM_GROUP = 'ipam'

ipam_opts = [
    cfg.StrOpt('node_name',
               default=None,
               help='Name of the node this agent runs on.'),
    cfg.ListOpt('networks',
                default=[],
                help='Networks in format name:type[:families], type is '
                     'Underlay or Overlay, families are separated by "+". '
                     'Example: ["underlay1:Underlay", "overlay1:Overlay:IPv4+IPv6"]'),
    cfg.ListOpt('subnets',
                default=[],
                help='Subnets in format name:network:cidr[@gateway]. '
                     'Example: ["sub1:underlay1:10.14.100.0/24@10.14.100.1"]'),
    cfg.StrOpt('records_path',
               default='/var/lib/podnet/records.json',
               help='File the allocated address records are persisted to.'),
]

arp_opts = [
    cfg.BoolOpt('arp_check_enabled',
                default=False,
                help='Run gateway, duplicate address and gratuitous ARP '
                     'checks before an underlay pod address is used.'),
    cfg.StrOpt('arp_interface',
               default=None,
               help='Interface the ARP checks are sent from.'),
    cfg.FloatOpt('arp_timeout',
                 default=3.0,
                 min=0.0,
                 help='Seconds each ARP step waits for a reply.'),
]


def register_ipam_opts(conf=None):
    """Register the ipam options with ``conf`` (``cfg.CONF`` by default)."""
    conf = conf if conf is not None else cfg.CONF
    conf.register_opts(ipam_opts + arp_opts, group=IPAM_GROUP)
    return conf


def list_opts():
    return [(IPAM_GROUP, ipam_opts + arp_opts)]


def parse_network_specs(spec_list):
    """Parse network specs ("name:type[:families]") into Network objects."""
    networks = []
    for spec in spec_list:
        parts = spec.split(':')
        if len(parts) < 2:
            raise ValueError(f"Invalid network spec '{spec}'")
        families = (IPFamily.IPV4,)
        if len(parts) > 2 and parts[2]:
            families = tuple(IPFamily.parse(f) for f in parts[2].split('+'))
        networks.append(Network(
            name=parts[0],
            type=NetworkType.parse(parts[1]),
            families=families,
        ))
    return networks


def parse_subnet_specs(spec_list):
    """Parse subnet specs ("name:network:cidr[@gateway]") into Subnet objects.

    Only the first two colons separate fields, so IPv6 ranges are accepted.
    """
    subnets = []
    for spec in spec_list:
        parts = spec.split(':', 2)
        if len(parts) != 3:
            raise ValueError(f"Invalid subnet spec '{spec}'")
        cidr, _, gateway = parts[2].partition('@')
        subnets.append(Subnet(
            name=parts[0],
            network=parts[1],
            cidr=cidr,
            gateway=gateway or None,
        ))
    return subnets
