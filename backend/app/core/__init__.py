"""
Core package — cross-cutting concerns.

Modules:
    config          — environment variables & settings
    logging_config  — structured JSON logging, request context
    request_info    — request accessors shared by tracer and normalizer
    errors          — exception hierarchy & error normalizer
    middleware      — request tracer (correlation IDs, lifecycle logs)
    security        — hardening headers, rate limiting, body size limit
    health          — health check aggregation
    database        — async PostgreSQL connection
"""
