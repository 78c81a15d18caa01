"""
Reporting for evolution runs.

All plots use matplotlib with the Agg backend and can be saved to files.

Example usage:
    from colosseum.visualization import plot_score_quantiles

    plot_score_quantiles(controller.stats_history, save_path='quantiles.png')
"""
from .evolution import (
    DEFAULT_LEVELS,
    format_evolution_summary,
    plot_best_scores,
    plot_score_quantiles,
    quantile_of_sorted,
    score_quantiles,
)

__all__ = [
    'DEFAULT_LEVELS',
    'quantile_of_sorted',
    'score_quantiles',
    'plot_score_quantiles',
    'plot_best_scores',
    'format_evolution_summary',
]
