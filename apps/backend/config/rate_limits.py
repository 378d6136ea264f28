"""
Rate limit configuration for external agent calls.

Only storyline regeneration retries on rate-limit responses. Slide generation
and design suggestions surface every failure immediately.
"""

# Backoff applied to regeneration requests answered with HTTP 429
REGENERATION_BACKOFF = {
    "max_retries": 3,
    "base_delay": 2.0,   # seconds before the first retry
    "max_delay": 30.0,   # ceiling for a single wait
    "jitter": 0.1,       # fraction of the delay added at random
}

# Profiles selectable through REGENERATION_BACKOFF_PROFILE
USAGE_PROFILES = {
    "conservative": {
        "max_retries": 5,
        "base_delay": 5.0,
        "max_delay": 60.0,
        "description": "Patient retries for low API tiers"
    },
    "balanced": {
        **REGENERATION_BACKOFF,
        "description": "Default bounded backoff"
    },
    "aggressive": {
        "max_retries": 1,
        "base_delay": 1.0,
        "max_delay": 5.0,
        "description": "Fail fast, single retry"
    },
}
