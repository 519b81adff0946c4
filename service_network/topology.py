"""
Subnet layout for the service network.

Pure planning, no Pulumi resources. The VPC is cut into equal subnets of
``subnet_prefix`` length and handed out in blocks of ``TIER_BLOCK_SIZE``
slots, one block per tier, one slot per AZ:

    block 0  public    10.x.0.0/24,  10.x.1.0/24,  ...
    block 1  private   10.x.16.0/24, 10.x.17.0/24, ...
    block 2  database  10.x.32.0/24, 10.x.33.0/24, ...

A tier keeps its addresses when another tier is switched on or off.
"""

import ipaddress
from dataclasses import dataclass

from service_network.errors import TopologyError

TIER_BLOCK_SIZE = 16

PUBLIC = 'public'
PRIVATE = 'private'
DATABASE = 'database'

TIERS = (PUBLIC, PRIVATE, DATABASE)
TIER_BLOCKS = {PUBLIC: 0, PRIVATE: 1, DATABASE: 2}

# Route table default route targets
INTERNET_GATEWAY = 'internet_gateway'
NAT_GATEWAY = 'nat_gateway'


@dataclass(frozen=True)
class SubnetPlan:
    """One subnet the stack will create."""
    tier: str
    az: str
    az_index: int
    cidr: str

    @property
    def public(self) -> bool:
        return self.tier == PUBLIC


def subnet_cidr(vpc_cidr, index, prefix):
    """
    Return the ``index``-th subnet of length ``prefix`` inside ``vpc_cidr``.

    Raises:
        TopologyError: If the VPC does not have that many subnets
    """
    network = ipaddress.IPv4Network(vpc_cidr)
    if prefix <= network.prefixlen:
        raise TopologyError(f'/{prefix} subnets do not fit inside {vpc_cidr}')
    available = 2 ** (prefix - network.prefixlen)
    if not 0 <= index < available:
        raise TopologyError(
            f'subnet slot {index} is outside {vpc_cidr}, which holds {available} /{prefix} subnets')
    size = 2 ** (32 - prefix)
    return str(ipaddress.IPv4Network((int(network.network_address) + index * size, prefix)))


def enabled_tiers(config):
    flags = {
        PUBLIC: config.public_subnets,
        PRIVATE: config.private_subnets,
        DATABASE: config.database_subnets,
    }
    return [tier for tier in TIERS if flags[tier]]


def plan_subnets(config):
    """
    Lay out one subnet per enabled tier per availability zone.

    Raises:
        TopologyError: If there are more AZs than slots in a tier block or the
            tiers do not fit inside the VPC CIDR
    """
    if len(config.availability_zones) > TIER_BLOCK_SIZE:
        raise TopologyError(
            f'{len(config.availability_zones)} availability zones exceed the {TIER_BLOCK_SIZE} slots per tier')

    plans = []
    for tier in enabled_tiers(config):
        for i, az in enumerate(config.availability_zones):
            index = TIER_BLOCKS[tier] * TIER_BLOCK_SIZE + i
            plans.append(SubnetPlan(
                tier=tier,
                az=az,
                az_index=i,
                cidr=subnet_cidr(config.cidr, index, config.subnet_prefix),
            ))
    return plans


def nat_placement(config):
    """Map each AZ with a private subnet to the AZ whose NAT gateway it uses."""
    if not (config.nat_enabled and config.private_subnets):
        return {}
    azs = config.availability_zones
    if config.single_nat_gateway:
        return {az: azs[0] for az in azs}
    return {az: az for az in azs}


def default_route_target(tier, config):
    """Where a tier's route table sends 0.0.0.0/0, or None for no default route."""
    if tier == PUBLIC:
        return INTERNET_GATEWAY
    if tier == PRIVATE and config.nat_enabled:
        return NAT_GATEWAY
    return None


def gateway_endpoint_tiers(config):
    """Tiers whose route tables get gateway endpoint routes."""
    return [tier for tier in enabled_tiers(config) if tier != PUBLIC]
