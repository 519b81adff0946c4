"""
Security groups for the service network.

Groups are created first without inline rules so that every group exists and
can be referenced by id; the planned rules are then attached as standalone
``aws.vpc`` ingress/egress rule resources, each pointing at a peer group or a
CIDR.
"""
import pulumi
from pulumi_aws import ec2, vpc

from service_network.policy import (
    DATABASE_GROUP, ENDPOINTS_GROUP, INGRESS, client_group, enforce_policy, plan_security_rules, planned_groups,
)


class SecurityGroups(object):
    def __init__(self, config, vpc_id, groups=None, rules=None):
        """
        Declare the planned security groups and rules in ``vpc_id``.

        ``groups`` and ``rules`` default to the plan derived from ``config``;
        either way the rule set is checked against the access policy before any
        resource is declared.
        """
        self.environment = config.environment
        self.root_tag_name = config.root_tag_name
        self.root_resource_name = config.root_resource_name
        self.protect_resources = config.protect_resources

        group_descriptions = planned_groups(config) if groups is None else groups
        self.rule_specs = plan_security_rules(config) if rules is None else list(rules)
        self.client_group_keys = [client_group(s) for s in config.client_services]

        enforce_policy(self.rule_specs, group_descriptions, self.client_group_keys, config.database_port)

        self.groups = {}
        for key, description in group_descriptions.items():
            self.groups[key] = ec2.SecurityGroup(
                f'{self.root_resource_name}-{key}-sg-{self.environment}',
                description=description,
                vpc_id=vpc_id,
                tags={
                    'Name': f'{self.root_tag_name} {key} security group {self.environment}'
                },
                opts=pulumi.ResourceOptions(protect=self.protect_resources)
            )

        self.rules = {}
        for rule_spec in self.rule_specs:
            self.rules[rule_spec.key] = self._create_rule(rule_spec)

        pulumi.log.info(f'declared {len(self.groups)} security groups with {len(self.rules)} rules')

    def _create_rule(self, rule_spec):
        rule_args = dict(
            security_group_id=self.groups[rule_spec.group].id,
            ip_protocol=rule_spec.protocol,
            description=rule_spec.description,
            opts=pulumi.ResourceOptions(protect=self.protect_resources),
        )
        if rule_spec.from_port is not None:
            rule_args['from_port'] = rule_spec.from_port
            rule_args['to_port'] = rule_spec.to_port
        if rule_spec.peer_group is not None:
            rule_args['referenced_security_group_id'] = self.groups[rule_spec.peer_group].id
        else:
            rule_args['cidr_ipv4'] = rule_spec.cidr

        resource_name = f'{self.root_resource_name}-{rule_spec.key}-{self.environment}'
        if rule_spec.direction == INGRESS:
            return vpc.SecurityGroupIngressRule(resource_name, **rule_args)
        return vpc.SecurityGroupEgressRule(resource_name, **rule_args)

    def client_group(self, service):
        return self.groups[client_group(service)]

    @property
    def database_group(self):
        return self.groups.get(DATABASE_GROUP)

    @property
    def endpoints_group(self):
        return self.groups.get(ENDPOINTS_GROUP)

    def group_ids(self):
        return {key: group.id for key, group in self.groups.items()}
