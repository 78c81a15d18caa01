"""
Training infrastructure for fighters.

This module provides the off-policy refinement pipeline:
- ReplayStore: trajectories in, discounted training samples out
- CriticLearner / ActorLearner: value regression and policy gradient steps
- Trainer: worker service that improves the critic and fine-tunes fighters
- CheckpointManager: resumable population checkpoints

Example usage:
    from colosseum.training import ReplayStore, Trainer

    replay = ReplayStore(capacity=10000, discount=0.99)
    trainer = Trainer(trainable=True, steps_per_agent=100)
    trainer.start()

    trainer.next_epoch(replay)
    trainer.refine(policy, on_refined)
"""
from .replay import ReplayStore, TrainingSample, TrajectoryStep, discounted_returns
from .critic import CriticLearner
from .actor import ActorLearner
from .trainer import RefineCallback, RefineResult, Trainer
from .checkpoints import CheckpointManager

__all__ = [
    # Replay
    'ReplayStore',
    'TrainingSample',
    'TrajectoryStep',
    'discounted_returns',

    # Learners
    'CriticLearner',
    'ActorLearner',

    # Service
    'Trainer',
    'RefineResult',
    'RefineCallback',

    # Checkpoints
    'CheckpointManager',
]
