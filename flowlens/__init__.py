"""
FlowLens - operational bottleneck analytics for order lifecycles.

Turns per-order status timelines into ranked stage bottleneck scores and a
stage x time heat map of delay intensity.
"""

__version__ = "0.1.0"
