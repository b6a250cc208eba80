"""Datadog submission layer."""

from .submitter import DatadogSubmitter

__all__ = ["DatadogSubmitter"]
