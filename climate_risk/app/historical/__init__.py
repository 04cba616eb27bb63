"""
Historical package — multi-year monthly aggregation.

Modules:
    aggregator — monthly statistics and per-month flood/drought scores
    patterns   — seasonal peaks, trends, and catalogue summaries
"""
