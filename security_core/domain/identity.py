"""
CRC — domain/identity.py

Name
- Session principal & network origin

Responsibilities
- Represent what the external session layer hands to the core: {user_id, role}.
- Represent what the transport layer hands to the core: {ip_address, user_agent}.

Constraints
- The core never authenticates; it trusts these values as already verified.
"""

from __future__ import annotations

from dataclasses import dataclass

from .roles import Role


@dataclass(frozen=True, slots=True)
class SessionPrincipal:
    user_id: str
    role: Role


@dataclass(frozen=True, slots=True)
class NetworkOrigin:
    ip_address: str | None = None
    user_agent: str | None = None


ANONYMOUS_ORIGIN = NetworkOrigin()
