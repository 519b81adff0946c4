"""VPC and networking architecture"""
import pulumi

import service_network.components.core_network as core_network
from service_network.config import get_config
from service_network.utils.autotag import register_auto_tags

network_config = get_config()

# Automatically inject tags.
register_auto_tags({
    'source': 'pulumi',
    'pulumi:Project': pulumi.get_project(),
    'pulumi:Stack': pulumi.get_stack(),
    **network_config.get_tags(),
})

stack_catalog = dict()
stack_root, fields, _ = core_network.create_stack(network_config)
stack_catalog[stack_root] = fields

pulumi.export('stack_catalog', stack_catalog)
