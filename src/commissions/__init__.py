"""Multi-role commission engine: calculation, rule matching and split allocation."""

__version__ = "0.1.0"
