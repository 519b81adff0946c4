"""
Stack configuration for the service network.

Loads the ``network`` object from Pulumi stack config and validates it into a
frozen dataclass. Every other module takes a ``NetworkConfig`` instead of
reading ``pulumi.Config`` itself.
"""

import ipaddress
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

import pulumi

from service_network.errors import NetworkConfigError

DEFAULT_REGION = 'us-east-1'
DEFAULT_ROOT_TAG_NAME = 'Service Network'
DEFAULT_ROOT_RESOURCE_NAME = 'service-network'
DEFAULT_SUBNET_PREFIX = 24
DEFAULT_DATABASE_PORT = 5432
DEFAULT_FLOW_LOG_RETENTION_DAYS = 60

# Values CloudWatch Logs accepts for retention_in_days (0 = never expire)
LOG_RETENTION_DAYS = frozenset({
    0, 1, 3, 5, 7, 14, 30, 60, 90, 120, 150, 180, 365, 400, 545, 731,
    1096, 1827, 2192, 2557, 2922, 3288, 3653,
})

_SERVICE_NAME = re.compile(r'^[a-z][a-z0-9-]{0,62}$')
_ENDPOINT_SERVICE = re.compile(r'^[a-z0-9][a-z0-9.-]*$')


@dataclass(frozen=True)
class NetworkConfig:
    """
    Desired shape of the service network for one stack.

    Attributes:
        environment: Deployment environment (dev, staging, prod)
        cidr: VPC IPv4 CIDR block
        region: AWS region, used to build endpoint service names
        availability_zones: AZs the subnet tiers are spread across
        root_tag_name: Prefix for ``Name`` tags
        root_resource_name: Prefix for Pulumi logical names
        subnet_prefix: Prefix length of each tier subnet
        public_subnets: Create a public subnet per AZ
        private_subnets: Create a private subnet per AZ
        database_subnets: Create an isolated database subnet per AZ
        nat_enabled: Give private subnets outbound internet through NAT
        single_nat_gateway: Share one NAT gateway (first AZ) across all AZs
        gateway_endpoints: Services reached through gateway endpoints
        interface_endpoints: Services reached through interface endpoints
        vpc_flow_logs: Ship VPC flow logs to CloudWatch Logs
        flow_log_retention_days: Flow log group retention
        client_services: Client Services allowed to reach the database
        database_port: TCP port admitted by the database security group
        protect_resources: Mark every resource protected in Pulumi
        owner: Optional owner tag
    """
    environment: str
    cidr: str
    availability_zones: tuple[str, ...]
    region: str = DEFAULT_REGION
    root_tag_name: str = DEFAULT_ROOT_TAG_NAME
    root_resource_name: str = DEFAULT_ROOT_RESOURCE_NAME
    subnet_prefix: int = DEFAULT_SUBNET_PREFIX
    public_subnets: bool = True
    private_subnets: bool = True
    database_subnets: bool = True
    nat_enabled: bool = True
    single_nat_gateway: bool = False
    gateway_endpoints: tuple[str, ...] = ('s3',)
    interface_endpoints: tuple[str, ...] = ()
    vpc_flow_logs: bool = False
    flow_log_retention_days: int = DEFAULT_FLOW_LOG_RETENTION_DAYS
    client_services: tuple[str, ...] = ()
    database_port: int = DEFAULT_DATABASE_PORT
    protect_resources: bool = False
    owner: str | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        self.validate()

    @property
    def is_production(self) -> bool:
        """Check if this is a production environment."""
        return self.environment == 'prod'

    @classmethod
    def from_dict(
        cls,
        environment: str,
        raw: Mapping[str, Any],
        region: str | None = None,
        owner: str | None = None,
    ) -> 'NetworkConfig':
        """
        Build a config from the raw ``network`` object.

        Args:
            environment: Deployment environment
            raw: Mapping as found under the ``network`` stack config key
            region: Fallback region when ``raw`` does not name one
            owner: Optional owner tag

        Raises:
            NetworkConfigError: If a field is missing or invalid
        """
        if not isinstance(raw, Mapping):
            raise NetworkConfigError('network config must be an object')
        for key in ('cidr', 'availability_zones'):
            if key not in raw:
                raise NetworkConfigError(f'network config is missing "{key}"')

        try:
            return cls(
                environment=environment,
                cidr=str(raw['cidr']),
                availability_zones=_as_tuple(raw['availability_zones'], 'availability_zones'),
                region=raw.get('region') or region or DEFAULT_REGION,
                root_tag_name=raw.get('root_tag_name', DEFAULT_ROOT_TAG_NAME),
                root_resource_name=raw.get('root_resource_name', DEFAULT_ROOT_RESOURCE_NAME),
                subnet_prefix=int(raw.get('subnet_prefix', DEFAULT_SUBNET_PREFIX)),
                public_subnets=_as_bool(raw.get('public_subnets', True), 'public_subnets'),
                private_subnets=_as_bool(raw.get('private_subnets', True), 'private_subnets'),
                database_subnets=_as_bool(raw.get('database_subnets', True), 'database_subnets'),
                nat_enabled=_as_bool(raw.get('nat_enabled', True), 'nat_enabled'),
                single_nat_gateway=_as_bool(raw.get('single_nat_gateway', False), 'single_nat_gateway'),
                gateway_endpoints=_as_tuple(raw.get('gateway_endpoints', ['s3']), 'gateway_endpoints'),
                interface_endpoints=_as_tuple(raw.get('interface_endpoints', []), 'interface_endpoints'),
                vpc_flow_logs=_as_bool(raw.get('vpc_flow_logs', False), 'vpc_flow_logs'),
                flow_log_retention_days=int(
                    raw.get('flow_log_retention_days', DEFAULT_FLOW_LOG_RETENTION_DAYS)),
                client_services=_as_tuple(raw.get('client_services', []), 'client_services'),
                database_port=int(raw.get('database_port', DEFAULT_DATABASE_PORT)),
                protect_resources=_as_bool(raw.get('protect_resources', False), 'protect_resources'),
                owner=owner,
            )
        except (TypeError, ValueError) as e:
            raise NetworkConfigError(f'invalid network config: {e}') from e

    def validate(self) -> None:
        """
        Check the config for values the topology cannot be built from.

        Raises:
            NetworkConfigError: On the first invalid value found
        """
        if not self.environment:
            raise NetworkConfigError('environment must not be empty')

        try:
            network = ipaddress.IPv4Network(self.cidr)
        except ValueError as e:
            raise NetworkConfigError(f'cidr {self.cidr!r} is not a valid IPv4 network: {e}') from e
        if not 16 <= network.prefixlen <= 24:
            raise NetworkConfigError(f'cidr {self.cidr} must have a prefix between /16 and /24')
        if not network.prefixlen < self.subnet_prefix <= 28:
            raise NetworkConfigError(
                f'subnet_prefix /{self.subnet_prefix} must be longer than /{network.prefixlen} and at most /28')

        if not self.availability_zones:
            raise NetworkConfigError('availability_zones must list at least one zone')
        duplicates = _duplicates(self.availability_zones)
        if duplicates:
            raise NetworkConfigError(f'availability_zones has duplicates: {", ".join(duplicates)}')

        if self.nat_enabled and not self.public_subnets:
            raise NetworkConfigError('nat_enabled requires public_subnets, NAT gateways live in public subnets')

        for name in self.client_services:
            if not _SERVICE_NAME.match(name):
                raise NetworkConfigError(
                    f'client service name {name!r} must be a lowercase label (a-z, 0-9, -)')
        duplicates = _duplicates(self.client_services)
        if duplicates:
            raise NetworkConfigError(f'client_services has duplicates: {", ".join(duplicates)}')

        for service in self.gateway_endpoints + self.interface_endpoints:
            if not _ENDPOINT_SERVICE.match(service):
                raise NetworkConfigError(f'endpoint service {service!r} is not a valid service name')
        both = set(self.gateway_endpoints) & set(self.interface_endpoints)
        if both:
            raise NetworkConfigError(
                f'services listed as both gateway and interface endpoints: {", ".join(sorted(both))}')

        if not 1 <= self.database_port <= 65535:
            raise NetworkConfigError(f'database_port {self.database_port} is out of range')
        if self.flow_log_retention_days not in LOG_RETENTION_DAYS:
            raise NetworkConfigError(
                f'flow_log_retention_days {self.flow_log_retention_days} is not a CloudWatch retention value')

    def get_tags(self) -> dict[str, str]:
        """Get environment-specific tags."""
        tags = {'environment': self.environment}
        if self.owner:
            tags['owner'] = self.owner
        return tags


def get_config() -> NetworkConfig:
    """
    Load the network configuration from Pulumi stack config.

    Returns:
        NetworkConfig: Validated configuration object

    Raises:
        pulumi.ConfigMissingError: If required config values are missing
        NetworkConfigError: If the network object is invalid
    """
    config = pulumi.Config()
    aws_config = pulumi.Config('aws')

    network_config = NetworkConfig.from_dict(
        environment=config.require('environment'),
        raw=config.require_object('network'),
        region=aws_config.get('region'),
        owner=config.get('owner'),
    )

    if network_config.database_subnets and not network_config.client_services:
        pulumi.log.warn('database subnets are enabled but no client_services are configured; '
                        'nothing will be allowed to reach the database security group')
    if network_config.is_production and network_config.single_nat_gateway:
        pulumi.log.warn('single_nat_gateway in prod makes every private subnet depend on one AZ')

    return network_config


def _as_tuple(value, name):
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise NetworkConfigError(f'{name} must be a list')
    return tuple(str(v) for v in value)


def _as_bool(value, name):
    if not isinstance(value, bool):
        raise NetworkConfigError(f'{name} must be true or false, got {value!r}')
    return value


def _duplicates(values):
    seen = set()
    return sorted({v for v in values if v in seen or seen.add(v)})
