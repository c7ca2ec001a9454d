"""
Error types raised by k2.

Every fatal condition is a ``K2Error``; the CLI reports its message on stderr
and exits with ``exit_code``. ``TransientBrokerError`` is the one error the
consumption loops recover from locally.
"""

from __future__ import annotations


class K2Error(Exception):
    """Base class for all k2 failures."""

    exit_code: int = 1


# ---- Parameter errors (detected before any network I/O) ----

class ParameterError(K2Error):
    pass


class ConflictingParameters(ParameterError):
    pass


class InvalidTimestamp(ParameterError):
    pass


class InvalidRelativeOffset(ParameterError):
    pass


class InvalidOffset(ParameterError):
    pass


class MissingTopic(ParameterError):
    pass


class MissingStartCondition(ParameterError):
    pass


class InvalidConfigProperty(ParameterError):
    pass


class InvalidHeader(ParameterError):
    pass


# ---- Cluster / topology errors ----

class ClusterError(K2Error):
    pass


class NoSuchTopic(ClusterError):
    pass


class NoPartitions(NoSuchTopic):
    pass


class MetadataError(ClusterError):
    pass


class WatermarkError(ClusterError):
    pass


# ---- Consumption errors ----

class TranslationError(K2Error):
    """Time → offset lookup failed; no safe starting point exists."""


class PollTimeout(K2Error):
    """Idle timeout elapsed before a single record was read."""


class TransientBrokerError(K2Error):
    """
    Inline broker error attached to a fetched message.

    Raised by the broker client, caught by the poll/tail loops, logged, and
    then ignored: one bad response must not abort an otherwise healthy run.
    """


class PublishError(K2Error):
    pass


class ClientCreationError(K2Error):
    """librdkafka refused the client configuration."""
