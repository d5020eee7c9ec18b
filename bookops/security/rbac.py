"""Casbin RBAC enforcer with region-aware policy enforcement.

Provides a lazy Enforcer singleton loaded from the model and policy files
shipped alongside this module.  Requests carry five fields:

- ``sub``    — the caller's role (``FLM``, ``SLM``, ``REVOPS``)
- ``home``   — the caller's home region
- ``region`` — the region of the resource being accessed
- ``obj``    — the resource kind (``builds``, ``clashes``)
- ``act``    — the operation (``read``, ``resolve``)

Policy domains are either ``*`` (every region — global scope) or ``own``
(only when the resource region equals the caller's home region).

Design decisions:
- Lazy singleton pattern; ``init_enforcer()`` is also called at server start
  so the first request does not pay the load cost.
- Policies are file-based: roles are fixed by the organisation chart, not
  edited at runtime.
"""

from __future__ import annotations

import logging
import pathlib

import casbin

from bookops.server.auth import AuthContext

logger = logging.getLogger(__name__)

# Lazy singleton, initialised on first call to get_enforcer().
_enforcer: casbin.Enforcer | None = None

_MODEL_PATH = pathlib.Path(__file__).parent / "rbac_model.conf"
_POLICY_PATH = pathlib.Path(__file__).parent / "rbac_policy.csv"

GLOBAL_DOMAIN = "*"


def init_enforcer() -> casbin.Enforcer:
    """Load the Casbin model and policy files into the module-level singleton."""
    global _enforcer
    _enforcer = casbin.Enforcer(str(_MODEL_PATH), str(_POLICY_PATH))
    logger.debug("RBAC enforcer loaded from %s", _POLICY_PATH)
    return _enforcer


def get_enforcer() -> casbin.Enforcer:
    """Return the module-level Enforcer, initialising it on first call."""
    if _enforcer is None:
        return init_enforcer()
    return _enforcer


def enforce(auth: AuthContext, region: str | None, obj: str, act: str) -> bool:
    """Check whether the caller may perform *act* on *obj* in *region*.

    Returns:
        ``True`` if allowed, ``False`` if denied.  A caller without a home
        region is only ever granted access through a global-scope policy.
    """
    return get_enforcer().enforce(
        auth.role.value,
        auth.region or "",
        region or "",
        obj,
        act,
    )


def has_global_scope(auth: AuthContext, obj: str = "builds", act: str = "read") -> bool:
    """True when the caller's role holds *act* on *obj* across every region."""
    return get_enforcer().has_policy(auth.role.value, GLOBAL_DOMAIN, obj, act)
