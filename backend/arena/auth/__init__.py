"""Arena route auth policy markers."""

from arena.auth.policy import (
    AUTH_POLICY_ATTR,
    JOB_TOKEN_HEADER,
    job_token_required,
    public_route,
    validate_route_auth_policy,
    verified_session,
)

__all__ = [
    "AUTH_POLICY_ATTR",
    "JOB_TOKEN_HEADER",
    "job_token_required",
    "public_route",
    "validate_route_auth_policy",
    "verified_session",
]
