"""State/store layer.

This package is the single source of truth for how live telemetry is
merged into per-vehicle display state and path history, and for the
rules evaluated against each merged event.
"""
