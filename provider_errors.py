"""
Error taxonomy for third-party data providers.

Clients raise these; score producers catch them at their own boundary
and substitute a documented default.  Only GeocodeError is allowed to
reach the caller of evaluate_area().
"""


class ProviderError(Exception):
    """Base class for every provider-layer failure."""

    pass


class ProviderUnavailable(ProviderError):
    """Network failure, HTTP error, or a non-OK provider status."""

    pass


class NoDataFound(ProviderError):
    """The provider answered but had nothing for this location."""

    pass


class MalformedPayload(ProviderError):
    """The provider answered with an unexpected shape."""

    pass


class GeocodeError(ProviderUnavailable):
    """Geocoding returned zero results or the provider rejected the request."""

    pass


class SearchError(ProviderUnavailable):
    """Nearby search or place details failed."""

    pass
