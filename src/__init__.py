"""
Document ranking experiment project.

Ranks a labelled document collection by vector similarity to a query and
scores the ranking with Mean Reciprocal Rank.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
