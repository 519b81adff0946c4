"""VPCs, subnets, route tables, NAT gateways and VPC endpoints"""
import json

import pulumi
from pulumi_aws import cloudwatch, iam, ec2

from service_network.topology import PUBLIC

ANYWHERE = '0.0.0.0/0'


class AwsVpc(object):
    def __init__(self, **kwargs):
        self.environment = kwargs.get('environment')
        self.region = kwargs.get('region')
        self.root_tag_name = kwargs.get('root_tag_name')
        self.root_resource_name = kwargs.get('root_resource_name')
        self.vpc_cidr = kwargs.get('vpc_cidr')
        self.protect_resources = kwargs.get('protect_resources', False)
        self.vpc = ec2.Vpc(
            f'{self.root_resource_name}-vpc-{self.environment}',
            cidr_block=self.vpc_cidr,
            instance_tenancy='default',
            enable_dns_hostnames=True,
            enable_dns_support=True,
            opts=self._opts(),
            tags={
                'Name': f'{self.root_tag_name} VPC {self.environment}'
            }
        )
        self.internet_gateway = ec2.InternetGateway(
            f'{self.root_resource_name}-vpc-ig-{self.environment}',
            vpc_id=self.vpc.id,
            opts=self._opts(),
            tags={
                'Name': f'{self.root_tag_name} VPC Internet Gateway {self.environment}'
            }
        )
        self.main_route_table = ec2.RouteTable(
            f'{self.root_resource_name}-route-table-{self.environment}',
            vpc_id=self.vpc.id,
            routes=[
                ec2.RouteTableRouteArgs(
                    cidr_block=ANYWHERE,
                    gateway_id=self.internet_gateway.id,
                )
            ],
            tags={
                'Name': f'{self.root_tag_name} route table {self.environment}'
            },
            opts=self._opts()
        )

    def _opts(self, **kwargs):
        return pulumi.ResourceOptions(protect=self.protect_resources, **kwargs)

    def create_subnet(self, az, cidr_block, tier=PUBLIC, resource_name=None, create_route_table=False,
                      nat_gateway=None):
        """
        Create a subnet in ``az``.

        With ``create_route_table`` the subnet also gets its own route table and
        association, and a ``(subnet, route_table, association)`` tuple is
        returned. Public subnets route 0.0.0.0/0 to the internet gateway, other
        tiers route it to ``nat_gateway`` when one is given and have no default
        route otherwise.
        """
        public = tier == PUBLIC
        if not resource_name:
            resource_name = f'{self.root_resource_name}-{tier}-subnet-{az}-{self.environment}'
        subnet = ec2.Subnet(
            resource_name,
            vpc_id=self.vpc.id,
            availability_zone=f'{az}',
            map_public_ip_on_launch=public,
            cidr_block=cidr_block,
            opts=self._opts(),
            tags={
                'Name': f'{self.root_tag_name} {tier.capitalize()} Subnet {az} {self.environment}',
                'tier': tier,
            }
        )
        if not create_route_table:
            return subnet

        routes = []
        if public:
            routes.append(ec2.RouteTableRouteArgs(cidr_block=ANYWHERE, gateway_id=self.internet_gateway.id))
        elif nat_gateway is not None:
            routes.append(ec2.RouteTableRouteArgs(cidr_block=ANYWHERE, nat_gateway_id=nat_gateway.id))

        route_table = ec2.RouteTable(
            f'{self.root_resource_name}-{tier}-route-table-{az}-{self.environment}',
            vpc_id=self.vpc.id,
            routes=routes,
            opts=self._opts(),
            tags={
                'Name': f'{self.root_tag_name} {tier.capitalize()} route table {az} {self.environment}',
                'tier': tier,
            },
        )
        subnet_assn = self.create_subnet_association(
            az, subnet.id, route_table_id=route_table.id,
            resource_name=f'{self.root_resource_name}-{tier}-subnet-association-{az}-{self.environment}'
        )

        return subnet, route_table, subnet_assn

    def create_nat_gateway(self, az, subnet):
        nat_eip = ec2.Eip(
            f'{self.root_resource_name}-nat-eip-{az}-{self.environment}',
            domain='vpc',
            tags={
                'Name': f'{self.root_tag_name} NAT EIP {az} {self.environment}'
            },
            opts=self._opts(depends_on=[self.internet_gateway])
        )
        nat_gateway = ec2.NatGateway(
            f'{self.root_resource_name}-nat-gateway-{az}-{self.environment}',
            allocation_id=nat_eip.id,
            subnet_id=subnet.id,
            tags={
                'Name': f'{self.root_tag_name} NAT Gateway {az} {self.environment}'
            },
            opts=self._opts()
        )
        return {
            'eip': nat_eip,
            'nat_gateway': nat_gateway
        }

    def create_subnet_association(self, az, subnet_id, resource_name=None, purpose='utility', route_table_id=None):
        if not resource_name:
            resource_name = f'{self.root_resource_name}-{purpose}-subnet-association-{az}-{self.environment}'
        if not route_table_id:
            route_table_id = self.main_route_table.id
        return ec2.RouteTableAssociation(
            resource_name,
            subnet_id=subnet_id,
            route_table_id=route_table_id,
            opts=self._opts()
        )

    def service_name(self, service):
        return f'com.amazonaws.{self.region}.{service}'

    def create_gateway_endpoint(self, service, route_table_ids):
        """Gateway endpoint (S3, DynamoDB) routed through ``route_table_ids``."""
        return ec2.VpcEndpoint(
            f'{self.root_resource_name}-{service}-endpoint-{self.environment}',
            service_name=self.service_name(service),
            vpc_endpoint_type='Gateway',
            vpc_id=self.vpc.id,
            route_table_ids=route_table_ids,
            tags={
                'Name': f'{self.root_tag_name} {service} gateway endpoint {self.environment}'
            },
            opts=self._opts()
        )

    def create_interface_endpoint(self, service, subnet_ids, security_group_ids):
        """PrivateLink endpoint with private DNS, one ENI per subnet."""
        return ec2.VpcEndpoint(
            f'{self.root_resource_name}-{service.replace(".", "-")}-endpoint-{self.environment}',
            service_name=self.service_name(service),
            vpc_endpoint_type='Interface',
            vpc_id=self.vpc.id,
            subnet_ids=subnet_ids,
            security_group_ids=security_group_ids,
            private_dns_enabled=True,
            tags={
                'Name': f'{self.root_tag_name} {service} interface endpoint {self.environment}'
            },
            opts=self._opts()
        )

    def create_vpc_flow_logs(self, retention_in_days=60):
        log_group = cloudwatch.LogGroup(
            f'{self.root_resource_name}-log-group-{self.environment}',
            name=f'/aws/flowlogs/{self.root_resource_name}-{self.environment}',
            retention_in_days=retention_in_days,
            tags={
                'Name': f'{self.root_tag_name} Flow Logs Group {self.environment}'
            },
            opts=self._opts()
        )
        flow_log_role = iam.Role(
            f'{self.root_resource_name}-log-role-{self.environment}',
            assume_role_policy=json.dumps({
                'Version': '2012-10-17',
                'Statement': [
                    {
                        'Effect': 'Allow',
                        'Principal': {
                            'Service': 'vpc-flow-logs.amazonaws.com'
                        },
                        'Action': 'sts:AssumeRole'
                    }
                ]
            }),
            tags={
                'Name': f'{self.root_tag_name} Flow Logs Role {self.environment}'
            },
            opts=self._opts()
        )
        iam.RolePolicy(
            f'{self.root_resource_name}-log-role-policy-{self.environment}',
            role=flow_log_role.id,
            policy=log_group.arn.apply(_flow_log_policy),
            opts=self._opts()
        )
        flow_log = ec2.FlowLog(
            f'{self.root_resource_name}-flow-log-{self.environment}',
            iam_role_arn=flow_log_role.arn,
            log_destination=log_group.arn,
            traffic_type='ALL',
            vpc_id=self.vpc.id,
            tags={
                'Name': f'{self.root_tag_name} Flow Log {self.environment}'
            },
            opts=self._opts()
        )
        return {
            'log_group': log_group,
            'role': flow_log_role,
            'flow_log': flow_log,
        }


def _flow_log_policy(log_group_arn):
    return json.dumps({
        'Version': '2012-10-17',
        'Statement': [
            {
                'Action': [
                    'logs:CreateLogStream',
                    'logs:PutLogEvents',
                    'logs:DescribeLogGroups',
                    'logs:DescribeLogStreams'
                ],
                'Effect': 'Allow',
                'Resource': [log_group_arn, f'{log_group_arn}:*']
            }
        ]
    })
