"""Daily reward claim and code-distribution engine."""

__version__ = "1.0.0"
