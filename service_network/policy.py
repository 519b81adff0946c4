"""
Security group rules and the access policy they must satisfy.

The rule set is planned here as plain data, checked, and only then turned
into resources by ``SecurityGroups``. The policy:

- only Client Service security groups may reach the database security group,
  over TCP on the database port;
- the database group never admits CIDR sources;
- no group admits ingress from anywhere (0.0.0.0/0);
- every rule references a group that exists;
- no two rules share a logical name.
"""

from dataclasses import dataclass

from service_network.errors import PolicyViolationError

INGRESS = 'ingress'
EGRESS = 'egress'

ALL_PROTOCOLS = '-1'
ANYWHERE = '0.0.0.0/0'
HTTPS_PORT = 443

DATABASE_GROUP = 'database'
ENDPOINTS_GROUP = 'endpoints'
CLIENT_GROUP_PREFIX = 'client-'


@dataclass(frozen=True)
class RuleSpec:
    """A single ingress or egress rule of a security group."""
    group: str
    direction: str
    protocol: str
    from_port: int | None = None
    to_port: int | None = None
    peer_group: str | None = None
    cidr: str | None = None
    description: str = ''

    @property
    def key(self) -> str:
        """Stable suffix for the rule's logical name."""
        if self.peer_group:
            peer = self.peer_group
        elif self.cidr == ANYWHERE:
            peer = 'anywhere'
        else:
            peer = str(self.cidr).replace('.', '-').replace('/', '-')
        ports = 'all' if self.protocol == ALL_PROTOCOLS else f'{self.protocol}-{self.from_port}-{self.to_port}'
        return f'{self.group}-{self.direction}-{ports}-{peer}'


@dataclass(frozen=True)
class PolicyViolation:
    rule: RuleSpec | None
    message: str

    def __str__(self):
        if self.rule is None:
            return self.message
        return f'{self.rule.group} {self.rule.direction} ({self.rule.description or self.rule.key}): {self.message}'


def client_group(service):
    return f'{CLIENT_GROUP_PREFIX}{service}'


def has_endpoints_group(config):
    """Interface endpoints only get a group when there is a private or database tier to hold them."""
    return bool(config.interface_endpoints) and (config.private_subnets or config.database_subnets)


def planned_groups(config):
    """Security group keys in creation order, with a description for each."""
    groups = {}
    for service in config.client_services:
        groups[client_group(service)] = f'Client Service {service}'
    if config.database_subnets:
        groups[DATABASE_GROUP] = 'Database, reachable only from Client Services'
    if has_endpoints_group(config):
        groups[ENDPOINTS_GROUP] = 'Interface VPC endpoints'
    return groups


def plan_security_rules(config):
    """Build the rule set implied by the config."""
    rules = []
    for service in config.client_services:
        rules.append(RuleSpec(
            group=client_group(service),
            direction=EGRESS,
            protocol=ALL_PROTOCOLS,
            cidr=ANYWHERE,
            description='All outbound traffic',
        ))

    if config.database_subnets:
        for service in config.client_services:
            rules.append(RuleSpec(
                group=DATABASE_GROUP,
                direction=INGRESS,
                protocol='tcp',
                from_port=config.database_port,
                to_port=config.database_port,
                peer_group=client_group(service),
                description=f'Database from {service}',
            ))

    if has_endpoints_group(config):
        for service in config.client_services:
            rules.append(RuleSpec(
                group=ENDPOINTS_GROUP,
                direction=INGRESS,
                protocol='tcp',
                from_port=HTTPS_PORT,
                to_port=HTTPS_PORT,
                peer_group=client_group(service),
                description=f'HTTPS from {service}',
            ))
    return rules


def check_policy(rules, groups, client_groups, database_port):
    """
    Return every way ``rules`` break the access policy.

    Args:
        rules: Planned ``RuleSpec`` objects
        groups: All declared security group keys
        client_groups: Keys of the Client Service groups
        database_port: The only port the database group may admit
    """
    groups = set(groups)
    client_groups = set(client_groups)
    violations = []
    seen_keys = set()

    for rule in rules:
        if rule.key in seen_keys:
            violations.append(PolicyViolation(rule, f'duplicates rule {rule.key!r}'))
        seen_keys.add(rule.key)
        if rule.group not in groups:
            violations.append(PolicyViolation(rule, f'group {rule.group!r} is not declared'))
        if rule.direction not in (INGRESS, EGRESS):
            violations.append(PolicyViolation(rule, f'unknown direction {rule.direction!r}'))
        if (rule.peer_group is None) == (rule.cidr is None):
            violations.append(PolicyViolation(rule, 'needs exactly one of peer_group or cidr'))
        if rule.peer_group is not None and rule.peer_group not in groups:
            violations.append(PolicyViolation(rule, f'references undeclared group {rule.peer_group!r}'))
        violations.extend(_check_ports(rule))

        if rule.direction != INGRESS:
            continue
        if rule.cidr == ANYWHERE:
            violations.append(PolicyViolation(rule, 'ingress from 0.0.0.0/0 is not allowed'))
        if rule.group == DATABASE_GROUP:
            if rule.cidr is not None:
                violations.append(PolicyViolation(rule, 'database accepts no CIDR sources'))
            if rule.peer_group is not None and rule.peer_group not in client_groups:
                violations.append(PolicyViolation(
                    rule, f'only Client Service groups may reach the database, not {rule.peer_group!r}'))
            if rule.protocol != 'tcp' or rule.from_port != database_port or rule.to_port != database_port:
                violations.append(PolicyViolation(rule, f'database ingress is limited to tcp/{database_port}'))
    return violations


def _check_ports(rule):
    if rule.protocol == ALL_PROTOCOLS:
        return []
    if rule.protocol not in ('tcp', 'udp'):
        return [PolicyViolation(rule, f'unknown protocol {rule.protocol!r}')]
    if rule.from_port is None or rule.to_port is None:
        return [PolicyViolation(rule, 'port range is required')]
    if not (0 <= rule.from_port <= 65535 and 0 <= rule.to_port <= 65535):
        return [PolicyViolation(rule, f'ports {rule.from_port}-{rule.to_port} out of range')]
    if rule.from_port > rule.to_port:
        return [PolicyViolation(rule, f'from_port {rule.from_port} is above to_port {rule.to_port}')]
    return []


def enforce_policy(rules, groups, client_groups, database_port):
    """
    Raises:
        PolicyViolationError: If ``check_policy`` finds anything
    """
    violations = check_policy(rules, groups, client_groups, database_port)
    if violations:
        raise PolicyViolationError(violations)
