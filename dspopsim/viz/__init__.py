"""dsPopSim visualization library.

Modules:
  - style: Dark theme colours and helpers
  - population: Stage trajectories, fruit quality, grid peaks
"""

from dspopsim.viz.style import (  # noqa: F401
    ACCENT_COLORS,
    DARK_BG,
    DARK_PANEL,
    FRUIT_COLOR,
    GRID_COLOR,
    STAGE_COLORS,
    TEXT_COLOR,
    apply_dark_theme,
    dark_figure,
    save_figure,
)

from dspopsim.viz.population import (  # noqa: F401
    plot_fruit_quality,
    plot_grid_peaks,
    plot_stage_trajectories,
)
