"""Exceptions raised while building the service network."""


class ServiceNetworkError(Exception):
    """Base exception for service network errors."""
    pass


class NetworkConfigError(ServiceNetworkError):
    """Raised when the stack's network configuration is invalid."""
    pass


class TopologyError(ServiceNetworkError):
    """Raised when the subnet layout does not fit the VPC."""
    pass


class PolicyViolationError(ServiceNetworkError):
    """Raised when planned security rules break the access policy."""

    def __init__(self, violations):
        self.violations = list(violations)
        super().__init__(
            'security policy violated:\n' + '\n'.join(f'  - {v}' for v in self.violations)
        )
