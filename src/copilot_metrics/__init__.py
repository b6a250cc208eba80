"""Forward daily GitHub Copilot usage metrics to Datadog."""

__version__ = "0.1.0"
