"""Per-domain active browsing time tracker."""

__version__ = "0.1.0"
