"""
Harvest Errors

Failures that abort a harvest cycle. Field-level defects never surface
here; the normalizer recovers them locally.
"""

from __future__ import annotations
from typing import Optional


MAX_ERROR_BODY_LENGTH = 400


class HarvestError(Exception):
    """Base class for errors that abort a harvest cycle."""


class MalformedPayload(HarvestError):
    """The page body was not parseable JSON."""


class TransportError(HarvestError):
    """
    Non-success HTTP status, timeout, or network failure.

    Carries a truncated response body for diagnostics.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        self.status_code = status_code
        self.body = body[:MAX_ERROR_BODY_LENGTH]
        detail = f"{message} {self.body}".strip()
        super().__init__(detail)


class ConfigError(HarvestError):
    """Configuration rejected at load time (bad scheme, untrusted host)."""
