"""Runner fleet reconciliation, template hashing, schedule matching and test helpers."""

__version__ = "0.1.0"