"""
Events package — extreme-weather event detection.

Modules:
    detector — heat wave, cold wave, drought, flood and storm detectors
    alerts   — rule-based weather alerts from current conditions
"""
