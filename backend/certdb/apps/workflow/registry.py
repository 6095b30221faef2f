from __future__ import annotations

from .guards import (
    guard_cancellation,
    guard_certificate_issue,
    guard_renewal_link,
    guard_revocation,
    guard_suspension,
)

# Manual (administrative) certificate transitions. Date-driven moves between
# active / expiring_soon / expired happen through status propagation and are
# not routed through here.
WORKFLOWS = {
    "certificate": {
        "transitions": {
            "draft": {
                "active": [guard_certificate_issue],
                "expiring_soon": [guard_certificate_issue],
                "expired": [guard_certificate_issue],
                "cancelled": [guard_cancellation],
            },
            "active": {
                "revoked": [guard_revocation],
                "suspended": [guard_suspension],
                "renewed": [guard_renewal_link],
                "cancelled": [guard_cancellation],
            },
            "expiring_soon": {
                "revoked": [guard_revocation],
                "suspended": [guard_suspension],
                "renewed": [guard_renewal_link],
                "cancelled": [guard_cancellation],
            },
            "expired": {
                "revoked": [guard_revocation],
                "renewed": [guard_renewal_link],
            },
            "suspended": {
                "active": [],
                "expiring_soon": [],
                "expired": [],
                "revoked": [guard_revocation],
            },
            "revoked": {},
            "renewed": {},
            "cancelled": {},
        }
    },
}
