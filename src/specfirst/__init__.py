"""SpecFirst - protocol, task graph and snapshot integrity core."""

__version__ = "0.4.0"
