"""
Core package — cross-cutting concerns.

Modules:
    config      — environment variables & settings
    logging     — structured JSON logging
    errors      — exception hierarchy & handlers
    middleware  — request logging / request IDs
    health      — health check aggregation
    cache       — time-bounded cache (memory or Redis)
"""
