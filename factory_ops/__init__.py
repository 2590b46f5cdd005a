"""Order dependency scheduling and rule-driven shop-floor automation."""

__version__ = "0.1.0"
