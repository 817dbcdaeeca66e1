"""
auth/models.py -- Identity carried by a validated access token.

Pattern: Data class (pure data container, zero logic). The administrator
record itself lives in fleet/models.py; Principal is only what the token
claims, so role checks never need a database round trip.

Layer rule: no imports from api/, cache/, or fleet/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of a request.

    email comes from the token's Email claim, role from its role claim
    ("Adm" or "Editor").
    """

    email: str
    role: str
