"""
Knowledge Paths
A validator for untrusted concept graphs and a synthesizer of
duration-bounded learning paths over the resulting prerequisite DAG.
"""

__version__ = "0.1.0"
