"""Population and fruit-quality figures.

Plots:
  1. Stage trajectories of one cell (juveniles, males, female sub-stages)
  2. Fruit quality with the harvest cutoff
  3. Grid heatmap of peak female abundance

All functions return a matplotlib Figure and optionally save it.
"""

from __future__ import annotations

import matplotlib
matplotlib.use('Agg')

from typing import Optional, TYPE_CHECKING

import matplotlib.pyplot as plt
import numpy as np

from dspopsim.types import FEMALE_SLICE, JUVENILE_STAGES, Stage, stage_name
from dspopsim.viz.style import (
    DARK_PANEL,
    FRUIT_COLOR,
    GRID_CMAP,
    STAGE_COLORS,
    TEXT_COLOR,
    dark_figure,
    female_stage_colors,
    save_figure,
    style_legend,
)

if TYPE_CHECKING:
    from dspopsim.cell import CellResult
    from dspopsim.grid import GridResult


# ═══════════════════════════════════════════════════════════════════════
# 1. STAGE TRAJECTORIES
# ═══════════════════════════════════════════════════════════════════════

def plot_stage_trajectories(
    result: 'CellResult',
    show_female_stages: bool = False,
    log_scale: bool = False,
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Abundance of every life stage over time.

    Args:
        result: CellResult from a cell or grid run.
        show_female_stages: Plot the seven female sub-stages separately
            instead of the female total.
        log_scale: Logarithmic y axis.
        save_path: Optional path to save the figure.

    Returns:
        matplotlib Figure.
    """
    fig, ax = dark_figure()
    t = result.times

    for stage in JUVENILE_STAGES + (Stage.MALE,):
        name = stage_name(stage)
        ax.plot(t, result.stages[:, stage], color=STAGE_COLORS[name],
                linewidth=1.8, label=name)

    if show_female_stages:
        females = result.stages[:, FEMALE_SLICE]
        for i, color in enumerate(female_stage_colors(females.shape[1])):
            ax.plot(t, females[:, i], color=color, linewidth=1.4,
                    label=f'females{i + 1}')
    else:
        ax.plot(t, result.females, color=STAGE_COLORS['females'],
                linewidth=2.5, label='females')

    crossed = result.summary.crossed_day
    if crossed is not None:
        ax.axvline(crossed, color=TEXT_COLOR, linestyle=':', linewidth=1.2,
                   alpha=0.7, label=f'diapause end (day {crossed})')

    if log_scale:
        ax.set_yscale('symlog', linthresh=1e-3)
    else:
        ax.set_ylim(bottom=0)
    ax.set_xlabel('Day', fontsize=12)
    ax.set_ylabel('Abundance', fontsize=12)
    ax.set_title('Life-Stage Trajectories', fontsize=14, fontweight='bold')
    style_legend(ax, fontsize=9, ncol=2)

    if save_path:
        save_figure(fig, save_path)
    return fig


# ═══════════════════════════════════════════════════════════════════════
# 2. FRUIT QUALITY
# ═══════════════════════════════════════════════════════════════════════

def plot_fruit_quality(
    result: 'CellResult',
    harvest_cutoff: Optional[float] = None,
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Fruit quality over time, with the harvest cutoff if given."""
    fig, ax = dark_figure(figsize=(10, 4))
    ax.plot(result.times, result.fruit, color=FRUIT_COLOR, linewidth=2.0,
            label='fruit quality')
    ax.fill_between(result.times, result.fruit, alpha=0.15, color=FRUIT_COLOR)

    if harvest_cutoff is not None:
        ax.axhline(harvest_cutoff, color=TEXT_COLOR, linestyle='--',
                   linewidth=1.2, alpha=0.7, label=f'harvest cutoff ({harvest_cutoff:g})')
    harvest_day = result.summary.harvest_day
    if harvest_day is not None:
        ax.axvline(harvest_day, color=STAGE_COLORS['females'], linestyle=':',
                   linewidth=1.2, label=f'harvest (day {harvest_day})')

    ax.set_ylim(0, 1.05)
    ax.set_xlabel('Day', fontsize=12)
    ax.set_ylabel('Quality', fontsize=12)
    ax.set_title('Fruit Quality', fontsize=14, fontweight='bold')
    style_legend(ax, fontsize=10)

    if save_path:
        save_figure(fig, save_path)
    return fig


# ═══════════════════════════════════════════════════════════════════════
# 3. GRID PEAKS
# ═══════════════════════════════════════════════════════════════════════

def plot_grid_peaks(
    grid_result: 'GridResult',
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Heatmap of peak total females per grid cell (skipped cells blank)."""
    peaks = grid_result.peak_females()
    masked = np.ma.masked_array(peaks, mask=np.zeros_like(peaks, dtype=bool))
    for row, col in grid_result.skipped:
        masked.mask[row, col] = True

    fig, ax = dark_figure(figsize=(8, 6))
    lat = grid_result.latitudes[:, 0]
    im = ax.imshow(masked, origin='lower', aspect='auto', cmap=GRID_CMAP,
                   extent=(-0.5, grid_result.n_cols - 0.5,
                           lat[0] - 0.5, lat[-1] + 0.5)
                   if grid_result.n_rows > 1 else None)
    cbar = fig.colorbar(im, ax=ax)
    cbar.set_label('Peak females', color=TEXT_COLOR)
    cbar.ax.tick_params(colors=TEXT_COLOR)
    cbar.outline.set_edgecolor(DARK_PANEL)

    (row, col), value, latitude = grid_result.max_female_cell()
    ax.set_xlabel('Column', fontsize=12)
    ax.set_ylabel('Latitude' if grid_result.n_rows > 1 else 'Row', fontsize=12)
    ax.set_title(f'Peak Females (max {value:.3g} at cell {row},{col}, lat {latitude:g})',
                 fontsize=13, fontweight='bold')

    if save_path:
        save_figure(fig, save_path)
    return fig
