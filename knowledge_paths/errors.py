"""
Exceptions raised by the knowledge-graph core.

Data-quality problems in provider records (dangling references, cycles,
inverted difficulties) are repaired and never raised. Only contract
violations by the caller surface as exceptions.
"""


class InvalidArgumentError(ValueError):
    """A caller passed an argument outside the documented contract."""
