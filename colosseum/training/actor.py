"""
Deterministic policy gradient fine-tuning for a single fighter.

The policy is nudged towards actions the critic values highly:

    loss = -mean(Q(state, policy(state)))

Only the policy's parameters are stepped; the critic is read-only here.
"""
from typing import Mapping

import numpy as np
import torch
import torch.optim as optim

from ..networks.policy import MLPPolicy
from .critic import CriticLearner, check_batch


class ActorLearner:
    """
    Fine-tunes one policy against a fixed critic.

    Example:
        learner = ActorLearner(policy, learning_rate=1e-4)
        for _ in range(100):
            learner.fit(replay.sample(32), critic)
    """

    def __init__(self, policy: MLPPolicy, learning_rate: float = 1e-4):
        self.policy = policy
        self.optimizer = optim.Adam(policy.parameters(), lr=learning_rate)
        self.steps = 0
        self.last_loss = 0.0

    def fit(self, batch: Mapping[str, np.ndarray], critic: CriticLearner) -> float:
        """
        Perform one policy update.

        Args:
            batch: Parallel arrays as returned by ``ReplayStore.sample``.
            critic: Critic whose online network scores the policy's actions.

        Returns:
            The policy loss before the update.
        """
        check_batch(batch)

        states = torch.as_tensor(batch['state'], dtype=torch.float32)

        self.policy.network.train()
        actions = self.policy.forward(states)
        loss = -critic.predict(states, actions).mean()

        self.optimizer.zero_grad()
        loss.backward()
        self.optimizer.step()
        # Gradients flowed through the critic; do not leave them behind
        critic.zero_grad()

        self.steps += 1
        self.last_loss = loss.item()
        return self.last_loss
