"""
Rate limiting configuration.

The Limiter instance is created in qms/__init__.py with no default limits;
this module applies RATELIMIT_WRITE to the workflow blueprints and
RATELIMIT_READ to the read-only ones. Disabled when RATELIMIT_ENABLED is
false (the testing config).
"""

import logging

logger = logging.getLogger(__name__)

_WRITE_BLUEPRINTS = ("assessment", "response", "nonconformity", "corrective_action")
_READ_BLUEPRINTS = ("dashboard", "standards")


def init_rate_limits(app, limiter):
    """Apply per-blueprint limits; health probes are exempt."""
    if not app.config.get("RATELIMIT_ENABLED", True):
        logger.info("Rate limiter disabled (RATELIMIT_ENABLED=False)")
        return

    write_limit = app.config["RATELIMIT_WRITE"]
    read_limit = app.config["RATELIMIT_READ"]
    for names, limit in ((_WRITE_BLUEPRINTS, write_limit), (_READ_BLUEPRINTS, read_limit)):
        for name in names:
            bp = app.blueprints.get(name)
            if bp is not None:
                limiter.limit(limit)(bp)

    health = app.blueprints.get("health")
    if health is not None:
        limiter.exempt(health)

    logger.info("Rate limiter configured: write=%s read=%s", write_limit, read_limit)
