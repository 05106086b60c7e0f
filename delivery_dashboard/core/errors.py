"""Error taxonomy shared by the store adapter, the cache and the transition service.

``InvalidTransition`` and ``Unauthorized`` are raised locally before any
request is sent. ``FetchFailed``, ``TransitionFailed`` and ``NotFound`` are
reported by the backing store. Nothing here is retried automatically.
"""

from typing import Optional


class DashboardError(Exception):
    """Base class for every error the dashboard core surfaces to its callers."""

    code = "dashboard_error"

    def __init__(self, detail: str, order_id: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.order_id = order_id

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.detail, "order_id": self.order_id}


class FetchFailed(DashboardError):
    code = "fetch_failed"


class TransitionFailed(DashboardError):
    code = "transition_failed"


class InvalidTransition(DashboardError):
    code = "invalid_transition"


class Unauthorized(DashboardError):
    code = "unauthorized"


class NotFound(DashboardError):
    code = "not_found"
