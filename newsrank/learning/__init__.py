"""
Layer 4: feedback loop.

- calibrator.py: bounded weight calibration from shortlist feedback
- run_log.py: per-run telemetry, alerts and the adaptive region floor
"""

from .calibrator import Calibrator
from .run_log import RunLogger
