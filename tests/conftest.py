"""Pytest fixtures: a mocked Pulumi engine and sample network configs."""

import pulumi
import pytest

from service_network.config import NetworkConfig


class NetworkMocks(pulumi.runtime.Mocks):
    """Echo inputs back as state and record every registered resource.

    Recorded ``inputs`` use the provider's camelCase property names.
    """

    def __init__(self):
        self.resources = []

    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        self.resources.append(args)
        outputs = dict(args.inputs)
        outputs.setdefault('arn', f'arn:aws:mock:::{args.name}')
        if args.typ == 'aws:ec2/eip:Eip':
            outputs.setdefault('publicIp', '203.0.113.10')
        return [f'{args.name}_id', outputs]

    def call(self, args: pulumi.runtime.MockCallArgs):
        return {}

    def of_type(self, typ):
        return [r for r in self.resources if r.typ == typ]

    def named(self, name):
        return next(r for r in self.resources if r.name == name)


MOCKS = NetworkMocks()
pulumi.runtime.set_mocks(MOCKS, project='service-network', stack='test', preview=False)


@pytest.fixture
def mocks():
    MOCKS.resources.clear()
    return MOCKS


@pytest.fixture
def raw_network():
    """A ``network`` stack config object as it appears in Pulumi.<stack>.yaml."""
    return {
        'cidr': '10.20.0.0/16',
        'region': 'us-east-1',
        'availability_zones': ['us-east-1a', 'us-east-1b'],
        'client_services': ['orders', 'billing'],
        'gateway_endpoints': ['s3'],
        'interface_endpoints': ['secretsmanager'],
    }


@pytest.fixture
def network_config(raw_network):
    return NetworkConfig.from_dict('test', raw_network)


@pytest.fixture
def declare(mocks):
    """Run ``fn`` as a Pulumi program against the mocks and return its result.

    Every resource ``fn`` declares is registered with the mocks by the time
    this returns.
    """
    def run(fn, *args, **kwargs):
        result = {}

        @pulumi.runtime.test
        def program():
            result['value'] = fn(*args, **kwargs)

        program()
        return result['value']
    return run
