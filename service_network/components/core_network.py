import pulumi

from service_network.policy import client_group, enforce_policy, plan_security_rules, planned_groups
from service_network.security_groups import SecurityGroups
from service_network.topology import (
    DATABASE, NAT_GATEWAY, PRIVATE, PUBLIC, default_route_target, gateway_endpoint_tiers, nat_placement,
    plan_subnets,
)
from service_network.vpc import AwsVpc


def create_stack(config):
    # Everything is planned and checked before the first resource is registered
    subnet_plans = plan_subnets(config)
    placement = nat_placement(config)
    groups = planned_groups(config)
    rules = plan_security_rules(config)
    enforce_policy(rules, groups, [client_group(s) for s in config.client_services], config.database_port)

    network_vpc = AwsVpc(
        environment=config.environment,
        region=config.region,
        root_tag_name=config.root_tag_name,
        root_resource_name=config.root_resource_name,
        vpc_cidr=config.cidr,
        protect_resources=config.protect_resources
    )
    root = network_vpc.root_resource_name

    pulumi.log.info(f'{root}: planned {len(subnet_plans)} subnets across '
                    f'{len(config.availability_zones)} availability zones in {config.cidr}')

    network_azs = {az: {} for az in config.availability_zones}

    # Public subnets first, NAT gateways live in them
    for plan in subnet_plans:
        if plan.tier != PUBLIC:
            continue
        network_azs[plan.az][PUBLIC] = _subnet_entry(
            plan, network_vpc.create_subnet(plan.az, plan.cidr, tier=PUBLIC, create_route_table=True))

    for az in sorted(set(placement.values()), key=config.availability_zones.index):
        network_azs[az]['nat'] = network_vpc.create_nat_gateway(az, network_azs[az][PUBLIC]['subnet'])

    for plan in subnet_plans:
        if plan.tier == PUBLIC:
            continue
        nat_gateway = None
        if default_route_target(plan.tier, config) == NAT_GATEWAY:
            nat_gateway = network_azs[placement[plan.az]]['nat']['nat_gateway']
        network_azs[plan.az][plan.tier] = _subnet_entry(
            plan, network_vpc.create_subnet(plan.az, plan.cidr, tier=plan.tier, create_route_table=True,
                                            nat_gateway=nat_gateway))

    security_groups = SecurityGroups(config, network_vpc.vpc.id, groups=groups, rules=rules)

    vpc_endpoints = {}
    endpoint_route_tables = [
        network_azs[az][tier]['route_table'].id
        for tier in gateway_endpoint_tiers(config) for az in network_azs
    ]
    for service in config.gateway_endpoints:
        if not endpoint_route_tables:
            pulumi.log.warn(f'{root}: skipping {service} gateway endpoint, no private or database route tables')
            continue
        vpc_endpoints[service] = network_vpc.create_gateway_endpoint(service, endpoint_route_tables)

    if config.interface_endpoints:
        endpoint_tier = PRIVATE if config.private_subnets else DATABASE
        endpoint_subnets = [network_azs[az][endpoint_tier]['subnet'].id
                            for az in network_azs if endpoint_tier in network_azs[az]]
        if not endpoint_subnets:
            pulumi.log.warn(f'{root}: skipping interface endpoints, no private or database subnets')
        else:
            for service in config.interface_endpoints:
                vpc_endpoints[service] = network_vpc.create_interface_endpoint(
                    service, endpoint_subnets, [security_groups.endpoints_group.id])

    flow_logs = None
    if config.vpc_flow_logs:
        flow_logs = network_vpc.create_vpc_flow_logs(config.flow_log_retention_days)

    fields = ['_vpc_id', '_vpc_cidr', '_internet_gateway_id', '_main_route_table_id']
    pulumi.export(f'{root}_vpc_id', network_vpc.vpc.id)
    pulumi.export(f'{root}_vpc_cidr', network_vpc.vpc.cidr_block)
    pulumi.export(f'{root}_protect_resources', network_vpc.protect_resources)
    pulumi.export(f'{root}_internet_gateway_id', network_vpc.internet_gateway.id)
    pulumi.export(f'{root}_main_route_table_id', network_vpc.main_route_table.id)

    for tier in (PUBLIC, PRIVATE, DATABASE):
        subnets = {az: network_azs[az][tier]['outputs'] for az in network_azs if tier in network_azs[az]}
        if subnets:
            pulumi.export(f'{root}_{tier}_subnets', subnets)
            fields.append(f'_{tier}_subnets')

    nat_gateways = {
        az: {
            'eip_id': network_azs[az]['nat']['eip'].id,
            'eip': network_azs[az]['nat']['eip'].public_ip,
            'nat_gateway_id': network_azs[az]['nat']['nat_gateway'].id
        } for az in network_azs if 'nat' in network_azs[az]
    }
    if nat_gateways:
        pulumi.export(f'{root}_nat_gateways', nat_gateways)
        fields.append('_nat_gateways')

    pulumi.export(f'{root}_security_groups', security_groups.group_ids())
    fields.append('_security_groups')

    if vpc_endpoints:
        pulumi.export(f'{root}_vpc_endpoints', {service: e.id for service, e in vpc_endpoints.items()})
        fields.append('_vpc_endpoints')

    if flow_logs:
        pulumi.export(f'{root}_flow_log_id', flow_logs['flow_log'].id)
        fields.append('_flow_log_id')

    return root, fields, {
        'vpc': network_vpc,
        'azs': network_azs,
        'security_groups': security_groups,
        'vpc_endpoints': vpc_endpoints,
        'flow_logs': flow_logs,
    }


def _subnet_entry(plan, created):
    subnet, route_table, subnet_association = created
    return {
        'subnet': subnet,
        'route_table': route_table,
        'subnet_association': subnet_association,
        'outputs': {
            'subnet_id': subnet.id,
            'cidr': plan.cidr,
            'route_table_id': route_table.id,
            'subnet_association_id': subnet_association.id,
        },
    }
