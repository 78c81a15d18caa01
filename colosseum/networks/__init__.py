"""
Neural network infrastructure for fighters and critics.

This module provides:
- NetworkBuilder: Convert between JSON architecture and PyTorch models
- Preset actor and critic architectures
- The policy capability used by the orchestration layer
"""
from .builder import DynamicNetwork, NetworkBuilder
from .architectures import (
    actor_architecture,
    critic_architecture,
    create_mlp_architecture,
)
from .policy import (
    BasePolicy,
    MLPPolicy,
    POLICY_KINDS,
    register_policy_kind,
    policy_from_transferable,
)

__all__ = [
    # Builder
    'DynamicNetwork',
    'NetworkBuilder',

    # Architectures
    'actor_architecture',
    'critic_architecture',
    'create_mlp_architecture',

    # Policies
    'BasePolicy',
    'MLPPolicy',
    'POLICY_KINDS',
    'register_policy_kind',
    'policy_from_transferable',
]
