"""
On-disk snapshots of a population.

One file per epoch, ``population_e<epoch>.pt``, written with ``torch.save``.
Saving the same epoch twice replaces the earlier file. The payload is
whatever the caller hands over (agents as transferables, statistics,
config) plus ``epoch`` and ``saved_at``.
"""
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import torch

logger = logging.getLogger(__name__)

FILE_PATTERN = 'population_e*.pt'


class CheckpointManager:
    """
    Rotate population snapshots inside one directory.

    Example:
        manager = CheckpointManager('./runs/colosseum', max_checkpoints=5)
        manager.save({'agents': [...]}, epoch=12)
        latest = manager.load_latest()
    """

    def __init__(self, checkpoint_dir: str, max_checkpoints: int = 10):
        """
        Args:
            checkpoint_dir: Created if missing.
            max_checkpoints: Snapshots kept after each save; 0 keeps all.
        """
        self.directory = Path(checkpoint_dir)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.max_checkpoints = max_checkpoints

    def path_for(self, epoch: int) -> Path:
        return self.directory / f'population_e{epoch:05d}.pt'

    def save(
        self,
        state: Dict[str, Any],
        epoch: int = 0,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Path:
        """
        Write ``state`` for ``epoch`` and prune older snapshots.

        Returns:
            The file written.
        """
        payload = {**state, 'epoch': epoch, 'saved_at': time.time()}
        if metadata:
            payload['metadata'] = metadata

        target = self.path_for(epoch)
        torch.save(payload, target)
        logger.info(f"Checkpoint for epoch {epoch} written to {target}")

        self._prune()
        return target

    def load(self, filepath: str) -> Dict[str, Any]:
        # Payloads hold plain python containers, not only tensors
        return torch.load(filepath, weights_only=False)

    def load_latest(self) -> Optional[Dict[str, Any]]:
        """Load the highest epoch in the directory, or None when it is empty."""
        files = self.list_checkpoints()
        return self.load(str(files[-1])) if files else None

    def list_checkpoints(self) -> List[Path]:
        """Snapshot files sorted by epoch."""
        return sorted(self.directory.glob(FILE_PATTERN), key=self._epoch_of)

    @staticmethod
    def _epoch_of(path: Path) -> int:
        digits = path.stem.rsplit('_e', 1)[-1]
        return int(digits) if digits.isdigit() else -1

    def _prune(self) -> None:
        if self.max_checkpoints <= 0:
            return
        files = self.list_checkpoints()
        for stale in files[:-self.max_checkpoints]:
            stale.unlink()
            logger.debug(f"Removed old checkpoint {stale}")
