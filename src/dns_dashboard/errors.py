"""Error taxonomy shared by the store, resolver, adapters and service."""

from __future__ import annotations


class DashboardError(Exception):
    """Base class for every error this package raises on purpose."""


class SourceUnavailable(DashboardError):
    """The log source could not be reached or answered with an error."""


class StoreUnavailable(DashboardError):
    """The analysis cache database could not be opened, read or written."""


class ClassifierUnavailable(DashboardError):
    """No usable response could be obtained from the classifier."""


class EnrichmentFailed(ClassifierUnavailable):
    """A whole enrichment batch failed; nothing was committed to the cache."""
