"""
Translation between JSON layer lists and torch modules.

Policies cross worker boundaries as plain data: the architecture dict
travels as shape metadata and every parameter is packed into one list of
floats, in ``parameters()`` order. ``NetworkBuilder`` owns both directions.
"""
from typing import Any, Callable, Dict, List, Sequence

import numpy as np
import torch
import torch.nn as nn
from torch.nn.utils import parameters_to_vector, vector_to_parameters


class DynamicNetwork(nn.Sequential):
    """
    Sequential stack rebuilt from its JSON description.

    Attributes:
        architecture: The dict the network was built from; enough to build
            an empty twin on the far side of a worker.
    """

    def __init__(self, modules: List[nn.Module], architecture: Dict[str, Any]):
        super().__init__(*modules)
        self.architecture = architecture

    @property
    def input_size(self) -> int:
        return self.architecture.get('input_size', 0)

    @property
    def output_size(self) -> int:
        return self.architecture.get('output_size', 0)


class NetworkBuilder:
    """
    Build networks from layer lists and move their weights in flat form.

    A layer list looks like::

        {
            "input_size": 12,
            "output_size": 3,
            "layers": [
                {"type": "linear", "in": 12, "out": 32},
                {"type": "activation", "fn": "relu"},
                {"type": "linear", "in": 32, "out": 3},
                {"type": "activation", "fn": "tanh"}
            ]
        }

    Example:
        builder = NetworkBuilder()
        actor = builder.from_json(actor_architecture(12, 3))
        packed = builder.flatten_weights(actor)
        builder.load_flat_weights(builder.from_json(actor.architecture), packed)
    """

    ACTIVATIONS: Dict[str, Callable[[], nn.Module]] = {
        'relu': nn.ReLU,
        'tanh': nn.Tanh,
        'sigmoid': nn.Sigmoid,
        'leaky_relu': nn.LeakyReLU,
        'elu': nn.ELU,
        'softplus': nn.Softplus,
        'identity': nn.Identity,
        'linear': nn.Identity,
    }

    def from_json(self, architecture: Dict[str, Any]) -> DynamicNetwork:
        """
        Instantiate the modules described by ``architecture``.

        Args:
            architecture: Dict with a ``layers`` list, plus the optional
                ``input_size``/``output_size`` bookkeeping keys.

        Returns:
            A freshly initialised DynamicNetwork.

        Raises:
            ValueError: On a malformed dict or an unsupported layer.
        """
        if not isinstance(architecture, dict) or 'layers' not in architecture:
            raise ValueError("Architecture must have 'layers' list")
        if not isinstance(architecture['layers'], list):
            raise ValueError("Architecture must have 'layers' list")

        modules = [
            self._make_module(index, entry)
            for index, entry in enumerate(architecture['layers'])
        ]
        return DynamicNetwork(modules, architecture)

    def _make_module(self, index: int, entry: Any) -> nn.Module:
        if not isinstance(entry, dict) or 'type' not in entry:
            raise ValueError(f"Layer {index} needs a 'type'")

        kind = entry['type']
        if kind == 'linear':
            return nn.Linear(entry['in'], entry['out'], bias=entry.get('bias', True))
        if kind == 'activation':
            name = entry.get('fn', 'relu')
            try:
                return self.ACTIVATIONS[name]()
            except KeyError:
                raise ValueError(f"Unknown activation function: {name}") from None
        if kind == 'layernorm':
            return nn.LayerNorm(entry['features'])
        raise ValueError(f"Unknown layer type: {kind}")

    def parameter_shapes(self, network: nn.Module) -> List[List[int]]:
        return [list(param.shape) for param in network.parameters()]

    def get_parameter_count(self, network: nn.Module) -> int:
        return sum(param.numel() for param in network.parameters())

    def flatten_weights(self, network: nn.Module) -> List[float]:
        """Pack every parameter into one list of floats."""
        params = list(network.parameters())
        if not params:
            return []
        with torch.no_grad():
            packed = parameters_to_vector(params).detach().cpu().numpy()
        return packed.astype(np.float64).tolist()

    def load_flat_weights(self, network: nn.Module, flat_weights: Sequence[float]) -> None:
        """
        Unpack ``flat_weights`` into ``network`` in place.

        Raises:
            ValueError: If the value count differs from the parameter count.
        """
        expected = self.get_parameter_count(network)
        if len(flat_weights) != expected:
            raise ValueError(
                f"Weight count mismatch: got {len(flat_weights)}, expected {expected}"
            )
        if expected == 0:
            return

        vector = torch.as_tensor(np.asarray(flat_weights, dtype=np.float32))
        with torch.no_grad():
            vector_to_parameters(vector, network.parameters())

    def clone_network(self, network: DynamicNetwork) -> DynamicNetwork:
        """Build a twin of ``network`` carrying the same weights."""
        twin = self.from_json(network.architecture)
        twin.load_state_dict(network.state_dict())
        return twin
