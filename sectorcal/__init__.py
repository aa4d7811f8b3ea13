# -*- coding: utf-8 -*-
"""Sector-scan fiducial detection, calibration and fan-view correction."""

__version__ = "0.1.0"
