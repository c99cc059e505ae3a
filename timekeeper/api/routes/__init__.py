"""Route modules exposed by the API package."""

from . import ping, reports, tickets

__all__ = ["ping", "reports", "tickets"]
