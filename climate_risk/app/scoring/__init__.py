"""
Scoring package — multi-hazard risk scorers.

Modules:
    thresholds — every hazard band table, defined once
    models     — RiskAssessment / ComponentScore records
    flood      — rainfall + elevation + slope
    drought    — precipitation anomaly + temperature anomaly + recent rain
    landslide  — slope + rainfall + soil + historical density, trigger check
"""
