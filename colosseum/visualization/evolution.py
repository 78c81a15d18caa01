"""
Reports on the generational loop.

Quantile bands show how the whole population moves, not just its best
fighter. Figures render with the Agg backend so headless runs can write
PNGs; every plot function returns the saved path or None.
"""
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np


DEFAULT_LEVELS = (0.9, 0.75, 0.5)


def _as_dict(stats: Any) -> Dict[str, Any]:
    if is_dataclass(stats):
        return asdict(stats)
    return dict(stats)


def quantile_of_sorted(values: Sequence[float], level: float) -> float:
    """
    Nearest-rank quantile: ``values[floor(len(values) * level)]``.

    The index is clamped to the last element; an empty list gives NaN.
    """
    if not values:
        return float('nan')
    index = min(int(len(values) * level), len(values) - 1)
    return float(values[index])


def score_quantiles(
    stats_history: Sequence[Any],
    levels: Sequence[float] = DEFAULT_LEVELS,
) -> Dict[float, List[float]]:
    """
    Compute score quantiles for every generation.

    Args:
        stats_history: ``GenerationStats`` objects or their dicts.
        levels: Quantile levels in [0, 1].

    Returns:
        Mapping level -> one value per generation.
    """
    per_level: Dict[float, List[float]] = {level: [] for level in levels}
    for stats in stats_history:
        scores = sorted(_as_dict(stats).get('scores', []))
        for level in levels:
            per_level[level].append(quantile_of_sorted(scores, level))
    return per_level


def _epochs(history: List[Dict[str, Any]]) -> List[int]:
    return [entry.get('epoch', i) for i, entry in enumerate(history)]


def _finish(fig, ax, title: str, save_path: Optional[str]) -> Optional[str]:
    ax.set_xlabel('Epoch')
    ax.set_ylabel('Score')
    ax.set_title(title)
    ax.legend(loc='best')
    ax.grid(True, alpha=0.3)
    fig.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    return save_path or None


def plot_score_quantiles(
    stats_history: Sequence[Any],
    levels: Sequence[float] = DEFAULT_LEVELS,
    save_path: Optional[str] = None,
    figsize: Tuple[int, int] = (12, 6),
) -> Optional[str]:
    """
    Draw one line per quantile level across generations.

    Args:
        stats_history: ``GenerationStats`` objects or their dicts.
        levels: Quantile levels; 0.9, 0.75 and 0.5 by default.
        save_path: PNG destination. Nothing is written when omitted.
        figsize: Matplotlib figure size in inches.

    Returns:
        ``save_path`` if a file was written.
    """
    if not stats_history:
        return None

    history = [_as_dict(s) for s in stats_history]
    bands = score_quantiles(history, levels)
    palette = plt.cm.hsv(np.linspace(0, 1, len(levels), endpoint=False))

    fig, ax = plt.subplots(figsize=figsize)
    for color, level in zip(palette, levels):
        ax.plot(_epochs(history), bands[level], color=color, linewidth=2, label=f'q{level:.2f}')

    return _finish(fig, ax, 'Score Quantiles Per Generation', save_path)


def plot_best_scores(
    stats_history: Sequence[Any],
    save_path: Optional[str] = None,
    show_range: bool = True,
    figsize: Tuple[int, int] = (12, 6),
) -> Optional[str]:
    """Best and mean score per generation, optionally over the min-best band."""
    if not stats_history:
        return None

    history = [_as_dict(s) for s in stats_history]
    epochs = _epochs(history)
    best = [entry.get('best', 0) for entry in history]

    fig, ax = plt.subplots(figsize=figsize)
    ax.plot(epochs, best, 'g-', linewidth=2, label='Best')
    ax.plot(epochs, [entry.get('mean', 0) for entry in history], 'b-', linewidth=2, label='Mean')
    if show_range:
        low = [entry.get('min', 0) for entry in history]
        ax.fill_between(epochs, low, best, alpha=0.2, color='gray', label='Range')

    return _finish(fig, ax, 'Scores Over Generations', save_path)


def format_evolution_summary(
    stats_history: Sequence[Any],
    best_agent: Optional[Any] = None,
) -> str:
    """
    Plain-text report for logs and the end of a run.

    Args:
        stats_history: Generation statistics, oldest first.
        best_agent: Optional ``Agent`` to describe at the bottom.
    """
    history = [_as_dict(s) for s in stats_history]
    rule = "-" * 48
    lines = [rule, "Colosseum run", rule, f"Generations evaluated: {len(history)}"]

    if history:
        start_best = history[0].get('best', 0)
        end = history[-1]
        lines += [
            "",
            f"Best score, first generation: {start_best:.3f}",
            f"Best score, last generation:  {end.get('best', 0):.3f}",
            f"Mean score, last generation:  {end.get('mean', 0):.3f}",
            f"Change in best: {end.get('best', 0) - start_best:+.3f}",
        ]

    if best_agent is not None:
        lines += [
            "",
            f"Champion {best_agent.id} (generation {best_agent.generation}, {best_agent.origin})",
            f"  fitness {best_agent.fitness:.3f}",
        ]

    lines.append(rule)
    return "\n".join(lines)
