"""dsPopSim: stage-structured population model of a fruit fly pest.

A deterministic, temperature-driven model coupling:
  - Egg, instar, pupa, male and seven female sub-stage dynamics
  - Photoperiod-driven diapause with two-switch hysteresis
  - A fruit-quality resource with a lagged harvest rule
  - Independent grid cells run on a bounded thread pool
"""

import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())
