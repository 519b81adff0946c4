"""Tests for loading and validating the network stack config."""

import json

import pulumi
import pytest

from service_network.config import NetworkConfig, DEFAULT_DATABASE_PORT, get_config
from service_network.errors import NetworkConfigError


class TestFromDict:
    def test_defaults_applied(self):
        config = NetworkConfig.from_dict('dev', {
            'cidr': '10.0.0.0/16',
            'availability_zones': ['us-east-1a'],
        })

        assert config.region == 'us-east-1'
        assert config.subnet_prefix == 24
        assert config.public_subnets and config.private_subnets and config.database_subnets
        assert config.nat_enabled and not config.single_nat_gateway
        assert config.gateway_endpoints == ('s3',)
        assert config.interface_endpoints == ()
        assert config.client_services == ()
        assert config.database_port == DEFAULT_DATABASE_PORT
        assert config.protect_resources is False

    def test_region_falls_back_to_provider_region(self):
        config = NetworkConfig.from_dict(
            'dev', {'cidr': '10.0.0.0/16', 'availability_zones': ['eu-west-1a']}, region='eu-west-1')

        assert config.region == 'eu-west-1'

    def test_network_region_wins_over_provider_region(self, raw_network):
        config = NetworkConfig.from_dict('dev', raw_network, region='eu-west-1')

        assert config.region == 'us-east-1'

    def test_lists_become_tuples(self, network_config):
        assert network_config.availability_zones == ('us-east-1a', 'us-east-1b')
        assert network_config.client_services == ('orders', 'billing')

    @pytest.mark.parametrize('missing', ['cidr', 'availability_zones'])
    def test_missing_required_field(self, raw_network, missing):
        del raw_network[missing]

        with pytest.raises(NetworkConfigError, match=missing):
            NetworkConfig.from_dict('dev', raw_network)

    def test_non_mapping_rejected(self):
        with pytest.raises(NetworkConfigError):
            NetworkConfig.from_dict('dev', ['10.0.0.0/16'])

    def test_string_instead_of_list_rejected(self, raw_network):
        raw_network['availability_zones'] = 'us-east-1a'

        with pytest.raises(NetworkConfigError, match='availability_zones must be a list'):
            NetworkConfig.from_dict('dev', raw_network)

    @pytest.mark.parametrize('field', ['nat_enabled', 'database_subnets', 'protect_resources'])
    @pytest.mark.parametrize('value', ['false', 'true', 0, 1, None])
    def test_non_bool_flag_rejected(self, raw_network, field, value):
        raw_network[field] = value

        with pytest.raises(NetworkConfigError, match=f'{field} must be true or false'):
            NetworkConfig.from_dict('dev', raw_network)

    def test_bool_flags_kept(self, raw_network):
        raw_network.update(nat_enabled=False, single_nat_gateway=True, vpc_flow_logs=True)

        config = NetworkConfig.from_dict('dev', raw_network)

        assert config.nat_enabled is False
        assert config.single_nat_gateway is True
        assert config.vpc_flow_logs is True

    def test_non_numeric_port_rejected(self, raw_network):
        raw_network['database_port'] = 'postgres'

        with pytest.raises(NetworkConfigError, match='invalid network config'):
            NetworkConfig.from_dict('dev', raw_network)


class TestValidation:
    def test_valid_config(self, network_config):
        network_config.validate()

    @pytest.mark.parametrize('cidr', ['10.0.0.0/8', '10.0.0.0/25', 'not-a-cidr', '10.0.0.1/16'])
    def test_bad_cidr(self, raw_network, cidr):
        raw_network['cidr'] = cidr

        with pytest.raises(NetworkConfigError, match='cidr'):
            NetworkConfig.from_dict('dev', raw_network)

    @pytest.mark.parametrize('prefix', [16, 12, 29])
    def test_bad_subnet_prefix(self, raw_network, prefix):
        raw_network['subnet_prefix'] = prefix

        with pytest.raises(NetworkConfigError, match='subnet_prefix'):
            NetworkConfig.from_dict('dev', raw_network)

    def test_empty_availability_zones(self, raw_network):
        raw_network['availability_zones'] = []

        with pytest.raises(NetworkConfigError, match='at least one zone'):
            NetworkConfig.from_dict('dev', raw_network)

    def test_duplicate_availability_zones(self, raw_network):
        raw_network['availability_zones'] = ['us-east-1a', 'us-east-1a']

        with pytest.raises(NetworkConfigError, match='duplicates: us-east-1a'):
            NetworkConfig.from_dict('dev', raw_network)

    def test_nat_requires_public_subnets(self, raw_network):
        raw_network['public_subnets'] = False

        with pytest.raises(NetworkConfigError, match='nat_enabled requires public_subnets'):
            NetworkConfig.from_dict('dev', raw_network)

    def test_private_only_network_without_nat(self, raw_network):
        raw_network.update(public_subnets=False, nat_enabled=False)

        config = NetworkConfig.from_dict('dev', raw_network)

        assert not config.public_subnets

    @pytest.mark.parametrize('name', ['Orders', 'orders_api', '9lives', ''])
    def test_bad_client_service_name(self, raw_network, name):
        raw_network['client_services'] = [name]

        with pytest.raises(NetworkConfigError, match='client service name'):
            NetworkConfig.from_dict('dev', raw_network)

    def test_duplicate_client_services(self, raw_network):
        raw_network['client_services'] = ['orders', 'orders']

        with pytest.raises(NetworkConfigError, match='client_services has duplicates'):
            NetworkConfig.from_dict('dev', raw_network)

    def test_endpoint_in_both_lists(self, raw_network):
        raw_network['gateway_endpoints'] = ['s3']
        raw_network['interface_endpoints'] = ['s3']

        with pytest.raises(NetworkConfigError, match='both gateway and interface'):
            NetworkConfig.from_dict('dev', raw_network)

    @pytest.mark.parametrize('port', [0, 65536])
    def test_database_port_out_of_range(self, raw_network, port):
        raw_network['database_port'] = port

        with pytest.raises(NetworkConfigError, match='database_port'):
            NetworkConfig.from_dict('dev', raw_network)

    def test_retention_must_be_cloudwatch_value(self, raw_network):
        raw_network['flow_log_retention_days'] = 45

        with pytest.raises(NetworkConfigError, match='flow_log_retention_days'):
            NetworkConfig.from_dict('dev', raw_network)

    def test_empty_environment(self, raw_network):
        with pytest.raises(NetworkConfigError, match='environment'):
            NetworkConfig.from_dict('', raw_network)


class TestTags:
    def test_environment_tag(self, network_config):
        assert network_config.get_tags() == {'environment': 'test'}

    def test_owner_tag(self, raw_network):
        config = NetworkConfig.from_dict('prod', raw_network, owner='platform')

        assert config.is_production
        assert config.get_tags() == {'environment': 'prod', 'owner': 'platform'}


@pytest.fixture
def stack_config():
    """Set the stack config the program reads, cleared again afterwards."""
    def set_config(values):
        pulumi.runtime.set_all_config({
            key: json.dumps(value) if isinstance(value, dict) else value for key, value in values.items()
        })
    yield set_config
    pulumi.runtime.set_all_config({})


@pytest.fixture
def warnings(monkeypatch):
    messages = []
    monkeypatch.setattr(pulumi.log, 'warn', lambda msg, *args, **kwargs: messages.append(msg))
    return messages


class TestGetConfig:
    def test_reads_stack_config(self, stack_config, warnings, raw_network):
        stack_config({
            'service-network:environment': 'staging',
            'service-network:owner': 'platform',
            'service-network:network': raw_network,
        })

        config = get_config()

        assert config.environment == 'staging'
        assert config.owner == 'platform'
        assert config.client_services == ('orders', 'billing')
        assert warnings == []

    def test_region_from_aws_provider_config(self, stack_config, warnings, raw_network):
        del raw_network['region']
        stack_config({
            'aws:region': 'eu-west-1',
            'service-network:environment': 'dev',
            'service-network:network': raw_network,
        })

        assert get_config().region == 'eu-west-1'

    def test_warns_when_database_has_no_clients(self, stack_config, warnings, raw_network):
        raw_network['client_services'] = []
        stack_config({'service-network:environment': 'dev', 'service-network:network': raw_network})

        get_config()

        assert len(warnings) == 1
        assert 'no client_services are configured' in warnings[0]

    def test_no_client_warning_without_database_subnets(self, stack_config, warnings, raw_network):
        raw_network.update(client_services=[], database_subnets=False)
        stack_config({'service-network:environment': 'dev', 'service-network:network': raw_network})

        get_config()

        assert warnings == []

    def test_warns_on_single_nat_gateway_in_prod(self, stack_config, warnings, raw_network):
        raw_network['single_nat_gateway'] = True
        stack_config({'service-network:environment': 'prod', 'service-network:network': raw_network})

        config = get_config()

        assert config.is_production
        assert warnings == ['single_nat_gateway in prod makes every private subnet depend on one AZ']

    def test_single_nat_gateway_outside_prod_is_quiet(self, stack_config, warnings, raw_network):
        raw_network['single_nat_gateway'] = True
        stack_config({'service-network:environment': 'dev', 'service-network:network': raw_network})

        get_config()

        assert warnings == []

    def test_missing_environment(self, stack_config, raw_network):
        stack_config({'service-network:network': raw_network})

        with pytest.raises(pulumi.ConfigMissingError):
            get_config()

    def test_missing_network(self, stack_config):
        stack_config({'service-network:environment': 'dev'})

        with pytest.raises(pulumi.ConfigMissingError):
            get_config()

    def test_invalid_network_object(self, stack_config, raw_network):
        raw_network['nat_enabled'] = 'false'
        stack_config({'service-network:environment': 'dev', 'service-network:network': raw_network})

        with pytest.raises(NetworkConfigError, match='nat_enabled must be true or false'):
            get_config()
