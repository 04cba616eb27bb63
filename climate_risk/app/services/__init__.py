"""
Services package — async orchestration over providers, cache and calculators.

Modules:
    risk_service — ClimateRiskService (indices, events, risk, history)
"""
