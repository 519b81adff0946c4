"""Inject a common tag set into every taggable resource in the stack."""
import pulumi

TAGGABLE_TYPES = frozenset([
    'aws:cloudwatch/logGroup:LogGroup',
    'aws:ec2/eip:Eip',
    'aws:ec2/flowLog:FlowLog',
    'aws:ec2/internetGateway:InternetGateway',
    'aws:ec2/natGateway:NatGateway',
    'aws:ec2/routeTable:RouteTable',
    'aws:ec2/securityGroup:SecurityGroup',
    'aws:ec2/subnet:Subnet',
    'aws:ec2/vpc:Vpc',
    'aws:ec2/vpcEndpoint:VpcEndpoint',
    'aws:iam/role:Role',
    'aws:vpc/securityGroupEgressRule:SecurityGroupEgressRule',
    'aws:vpc/securityGroupIngressRule:SecurityGroupIngressRule',
])


def is_taggable(t):
    return t in TAGGABLE_TYPES


def auto_tag(args, auto_tags):
    """Stack transformation body; tags set on the resource itself win."""
    if not is_taggable(args.type_):
        return None
    args.props['tags'] = {**auto_tags, **(args.props.get('tags') or {})}
    return pulumi.ResourceTransformationResult(args.props, args.opts)


def register_auto_tags(auto_tags):
    pulumi.runtime.register_stack_transformation(lambda args: auto_tag(args, auto_tags))
