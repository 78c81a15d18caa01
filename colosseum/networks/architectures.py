"""
Layer lists for the two network roles.

The actor maps an observation to one bounded force per ragdoll part; the
critic maps a concatenated (observation, action) pair to a single value.
Both are plain MLPs whose hidden stack is ``hidden_layers + 1`` wide layers.
"""
from typing import Any, Dict, List, Optional, Sequence


def _dense(in_size: int, out_size: int) -> Dict[str, Any]:
    return {'type': 'linear', 'in': in_size, 'out': out_size}


def _act(fn: str) -> Dict[str, Any]:
    return {'type': 'activation', 'fn': fn}


def create_mlp_architecture(
    input_size: int,
    output_size: int,
    hidden_sizes: Optional[Sequence[int]] = None,
    activation: str = 'relu',
    output_activation: Optional[str] = None,
    name: str = 'MLP',
) -> Dict[str, Any]:
    """
    Describe a fully connected stack.

    Args:
        input_size: Features entering the first layer.
        output_size: Width of the head.
        hidden_sizes: Widths of the hidden layers; two layers of 64 if omitted.
        activation: Applied after every hidden layer.
        output_activation: Optional squashing on the head.
        name: Stored under ``name`` for logs and checkpoints.

    Returns:
        A dict accepted by ``NetworkBuilder.from_json``.
    """
    widths = [input_size] + list(hidden_sizes if hidden_sizes is not None else (64, 64))

    layers: List[Dict[str, Any]] = []
    for in_size, out_size in zip(widths, widths[1:]):
        layers += [_dense(in_size, out_size), _act(activation)]
    layers.append(_dense(widths[-1], output_size))
    if output_activation:
        layers.append(_act(output_activation))

    return {'name': name, 'input_size': input_size, 'output_size': output_size, 'layers': layers}


def actor_architecture(
    observation_size: int = 240,
    action_size: int = 11,
    hidden_layers: int = 4,
    hidden_units: int = 164,
) -> Dict[str, Any]:
    """
    Fighter policy: observation -> per-part force in [-1, 1].

    Architecture:
        Input -> [Linear -> ReLU] x (hidden_layers + 1) -> Linear -> Tanh

    Args:
        observation_size: Length of the encoded observation.
        action_size: Number of actuated ragdoll parts.
        hidden_layers: Number of hidden layers after the input layer.
        hidden_units: Width of every hidden layer.
    """
    return create_mlp_architecture(
        observation_size,
        action_size,
        hidden_sizes=[hidden_units] * (hidden_layers + 1),
        output_activation='tanh',
        name='Actor',
    )


def critic_architecture(
    observation_size: int = 240,
    action_size: int = 11,
    hidden_layers: int = 4,
    hidden_units: int = 164,
) -> Dict[str, Any]:
    # Linear head: returns are unbounded
    return create_mlp_architecture(
        observation_size + action_size,
        1,
        hidden_sizes=[hidden_units] * (hidden_layers + 1),
        name='Critic',
    )
