"""
Policy abstraction for fighters.

The orchestration layer treats a policy as an opaque capability: it can
predict an action, be mutated, be combined with another policy, be copied,
be disposed, and be flattened into a transferable dictionary so it can
cross a worker boundary. ``MLPPolicy`` is the PyTorch implementation.

Transferable form:
    {
        "kind": "mlp",
        "shape_metadata": {"architecture": {...}, "parameter_shapes": [[...], ...]},
        "flat_weights": [0.12, -0.4, ...]
    }
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence, Type

import torch

from ..exceptions import ObservationEncodingError
from .architectures import actor_architecture
from .builder import DynamicNetwork, NetworkBuilder


class BasePolicy(ABC):
    """
    Abstract base class for evolvable policies.

    Attributes:
        kind: Registry key written into the transferable form.
        input_size: Expected observation length.
        output_size: Produced action length.

    Example:
        class ConstantPolicy(BasePolicy):
            kind = 'constant'

            def predict(self, observation):
                return [0.0] * self.output_size
            ...
    """

    kind: str = ''
    input_size: int = 0
    output_size: int = 0

    @abstractmethod
    def predict(self, observation: Sequence[float]) -> List[float]:
        """Return one action vector for one observation."""

    @abstractmethod
    def mutate(self, rate: float, std: float) -> None:
        """
        Add Gaussian noise to a random subset of parameters, in place.

        Args:
            rate: Probability that each parameter is perturbed (0-1).
            std: Standard deviation of the noise.
        """

    @abstractmethod
    def combine(self, other: 'BasePolicy', factor: float) -> 'BasePolicy':
        """
        Interpolate two parents: ``factor * self + (1 - factor) * other``.

        Returns:
            A new policy; both parents are left untouched.
        """

    @abstractmethod
    def copy(self) -> 'BasePolicy':
        """Return an independent copy with identical parameters."""

    @abstractmethod
    def dispose(self) -> None:
        """Release the parameters. The policy is unusable afterwards."""

    @abstractmethod
    def to_transferable(self) -> Dict[str, Any]:
        """Return the flat, picklable form of this policy."""

    @classmethod
    @abstractmethod
    def from_transferable(cls, data: Dict[str, Any]) -> 'BasePolicy':
        """Rebuild a policy from ``to_transferable`` output."""

    @property
    def disposed(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(in={self.input_size}, out={self.output_size})"


class MLPPolicy(BasePolicy):
    """
    Fighter policy backed by a PyTorch MLP.

    Example:
        policy = MLPPolicy.create(observation_size=240, action_size=11)
        policy.mutate(rate=1.0, std=10.0)
        action = policy.predict(observation)
        child = policy.combine(other, factor=0.25)
    """

    kind = 'mlp'

    def __init__(self, network: DynamicNetwork):
        self._builder = NetworkBuilder()
        self._network: Optional[DynamicNetwork] = network
        self.input_size = network.architecture['input_size']
        self.output_size = network.architecture['output_size']

    @classmethod
    def from_architecture(cls, architecture: Dict[str, Any]) -> 'MLPPolicy':
        return cls(NetworkBuilder().from_json(architecture))

    @classmethod
    def create(
        cls,
        observation_size: int = 240,
        action_size: int = 11,
        hidden_layers: int = 4,
        hidden_units: int = 164,
    ) -> 'MLPPolicy':
        """Create a randomly initialised actor."""
        return cls.from_architecture(actor_architecture(
            observation_size=observation_size,
            action_size=action_size,
            hidden_layers=hidden_layers,
            hidden_units=hidden_units,
        ))

    @property
    def network(self) -> DynamicNetwork:
        if self._network is None:
            raise RuntimeError("Policy has been disposed")
        return self._network

    @property
    def disposed(self) -> bool:
        return self._network is None

    @property
    def architecture(self) -> Dict[str, Any]:
        return self.network.architecture

    def predict(self, observation: Sequence[float]) -> List[float]:
        if len(observation) != self.input_size:
            raise ObservationEncodingError(
                f"Observation has {len(observation)} values, expected {self.input_size}",
                expected=self.input_size,
                actual=len(observation),
            )

        network = self.network
        network.eval()
        with torch.no_grad():
            features = torch.as_tensor(observation, dtype=torch.float32).unsqueeze(0)
            action = network(features)
        return action.squeeze(0).tolist()

    def forward(self, states: torch.Tensor) -> torch.Tensor:
        """Differentiable batch forward pass, used by the trainer."""
        return self.network(states)

    def parameters(self):
        return self.network.parameters()

    def mutate(self, rate: float, std: float) -> None:
        with torch.no_grad():
            for param in self.network.parameters():
                noise = torch.randn_like(param) * std
                if rate >= 1.0:
                    param.add_(noise)
                else:
                    mask = torch.rand_like(param) < rate
                    param.add_(noise * mask.float())

    def combine(self, other: 'BasePolicy', factor: float) -> 'MLPPolicy':
        if not isinstance(other, MLPPolicy):
            raise ValueError(f"Cannot combine MLPPolicy with {type(other).__name__}")
        if not self._check_compatible(other):
            raise ValueError("Parents must have identical architectures")

        child = self.copy()
        state_a = self.network.state_dict()
        state_b = other.network.state_dict()
        child_state = child.network.state_dict()

        with torch.no_grad():
            for name in child_state:
                child_state[name] = factor * state_a[name] + (1 - factor) * state_b[name]

        child.network.load_state_dict(child_state)
        return child

    def _check_compatible(self, other: 'MLPPolicy') -> bool:
        """Check if two policies have compatible parameter shapes."""
        state_a = self.network.state_dict()
        state_b = other.network.state_dict()

        if state_a.keys() != state_b.keys():
            return False

        return all(state_a[name].shape == state_b[name].shape for name in state_a)

    def copy(self) -> 'MLPPolicy':
        return MLPPolicy(self._builder.clone_network(self.network))

    def dispose(self) -> None:
        self._network = None

    def to_transferable(self) -> Dict[str, Any]:
        network = self.network
        return {
            'kind': self.kind,
            'shape_metadata': {
                'architecture': network.architecture,
                'parameter_shapes': self._builder.parameter_shapes(network),
            },
            'flat_weights': self._builder.flatten_weights(network),
        }

    @classmethod
    def from_transferable(cls, data: Dict[str, Any]) -> 'MLPPolicy':
        builder = NetworkBuilder()
        network = builder.from_json(data['shape_metadata']['architecture'])

        shapes = data['shape_metadata'].get('parameter_shapes')
        if shapes is not None and shapes != builder.parameter_shapes(network):
            raise ValueError("Parameter shapes do not match the architecture")

        builder.load_flat_weights(network, data['flat_weights'])
        return cls(network)


# kind -> policy class, used to rebuild policies on the far side of a worker boundary
POLICY_KINDS: Dict[str, Type[BasePolicy]] = {
    MLPPolicy.kind: MLPPolicy,
}


def register_policy_kind(policy_class: Type[BasePolicy]) -> Type[BasePolicy]:
    """
    Register a policy class so ``policy_from_transferable`` can rebuild it.

    Usable as a class decorator.
    """
    if not policy_class.kind:
        raise ValueError(f"{policy_class.__name__} must define a 'kind'")
    POLICY_KINDS[policy_class.kind] = policy_class
    return policy_class


def policy_from_transferable(data: Dict[str, Any]) -> BasePolicy:
    """
    Rebuild any registered policy from its transferable form.

    Raises:
        ValueError: If the transferable names an unknown kind.
    """
    kind = data.get('kind', MLPPolicy.kind)
    if kind not in POLICY_KINDS:
        raise ValueError(f"Unknown policy kind: {kind}")
    return POLICY_KINDS[kind].from_transferable(data)


PolicyFactory = Callable[[], BasePolicy]
TransferableLoader = Callable[[Dict[str, Any]], BasePolicy]
