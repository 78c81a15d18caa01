"""
Action-value critic with a slowly tracking target network.

Standard actor-critic value regression:

    target = reward + discount * (1 - terminal) * Q_target(next_state, next_action)
    loss   = mean((Q(state, action) - target) ** 2)

After every update the target network is blended towards the online one:
``target <- (1 - tau) * target + tau * online``.
"""
from typing import Dict, List, Mapping

import numpy as np
import torch
import torch.nn.functional as F
import torch.optim as optim

from ..networks.architectures import critic_architecture
from ..networks.builder import NetworkBuilder


BATCH_KEYS = ('state', 'next_state', 'action', 'next_action', 'reward', 'terminal')


def check_batch(batch: Mapping[str, np.ndarray]) -> int:
    """
    Validate that all batch arrays share the same leading dimension.

    Returns:
        The batch size.

    Raises:
        ValueError: If a key is missing or a length differs.
    """
    missing = [key for key in BATCH_KEYS if key not in batch]
    if missing:
        raise ValueError(f"Batch is missing keys: {missing}")

    size = len(batch['state'])
    for key in BATCH_KEYS:
        if len(batch[key]) != size:
            raise ValueError(f"The shape of {key} is invalid.")
    return size


class CriticLearner:
    """
    Online and target Q-networks over concatenated (state, action) input.

    Example:
        critic = CriticLearner(observation_size=240, action_size=11)
        loss = critic.fit(replay.sample(32))
        q = critic.predict(states, actions)
    """

    def __init__(
        self,
        observation_size: int = 240,
        action_size: int = 11,
        hidden_layers: int = 4,
        hidden_units: int = 164,
        learning_rate: float = 1e-4,
        tau: float = 0.001,
        discount: float = 0.99,
    ):
        """
        Initialize the critic.

        Args:
            observation_size: State vector length.
            action_size: Action vector length.
            hidden_layers: Hidden layers after the input layer.
            hidden_units: Hidden layer width.
            learning_rate: Adam learning rate for the online network.
            tau: Target blending factor per update.
            discount: Bootstrap discount factor.
        """
        builder = NetworkBuilder()
        architecture = critic_architecture(
            observation_size=observation_size,
            action_size=action_size,
            hidden_layers=hidden_layers,
            hidden_units=hidden_units,
        )

        self.observation_size = observation_size
        self.action_size = action_size
        self.tau = tau
        self.discount = discount

        self.online = builder.from_json(architecture)
        self.target = builder.clone_network(self.online)
        for param in self.target.parameters():
            param.requires_grad_(False)

        self.optimizer = optim.Adam(self.online.parameters(), lr=learning_rate)

        # Training statistics
        self.updates = 0
        self._recent_losses: List[float] = []

    def predict(
        self,
        states: torch.Tensor,
        actions: torch.Tensor,
        target: bool = False,
    ) -> torch.Tensor:
        """
        Estimate Q(state, action).

        Args:
            states: Tensor of shape (B, observation_size).
            actions: Tensor of shape (B, action_size).
            target: Use the target network instead of the online one.

        Returns:
            Tensor of shape (B, 1).
        """
        network = self.target if target else self.online
        return network(torch.cat([states, actions], dim=-1))

    def fit(self, batch: Mapping[str, np.ndarray]) -> float:
        """
        Perform one regression step and blend the target network.

        Args:
            batch: Parallel arrays as returned by ``ReplayStore.sample``.

        Returns:
            The MSE loss before the update.
        """
        check_batch(batch)

        states = torch.as_tensor(batch['state'], dtype=torch.float32)
        actions = torch.as_tensor(batch['action'], dtype=torch.float32)
        next_states = torch.as_tensor(batch['next_state'], dtype=torch.float32)
        next_actions = torch.as_tensor(batch['next_action'], dtype=torch.float32)
        rewards = torch.as_tensor(batch['reward'], dtype=torch.float32).unsqueeze(-1)
        terminal = torch.as_tensor(batch['terminal'], dtype=torch.float32).unsqueeze(-1)

        with torch.no_grad():
            next_q = self.predict(next_states, next_actions, target=True)
            targets = rewards + self.discount * (1.0 - terminal) * next_q

        self.online.train()
        predicted = self.predict(states, actions)
        loss = F.mse_loss(predicted, targets)

        self.optimizer.zero_grad()
        loss.backward()
        self.optimizer.step()

        self._soft_update()

        self.updates += 1
        self._recent_losses.append(loss.item())
        self._recent_losses = self._recent_losses[-100:]
        return loss.item()

    def _soft_update(self) -> None:
        """Blend target parameters towards the online network."""
        with torch.no_grad():
            for target_param, online_param in zip(self.target.parameters(), self.online.parameters()):
                target_param.mul_(1.0 - self.tau).add_(online_param, alpha=self.tau)

    def get_stats(self) -> Dict[str, float]:
        """Get training statistics."""
        avg_loss = (
            sum(self._recent_losses) / len(self._recent_losses)
            if self._recent_losses else 0.0
        )
        return {
            'updates': self.updates,
            'avg_loss': avg_loss,
        }

    def zero_grad(self) -> None:
        self.online.zero_grad(set_to_none=True)
