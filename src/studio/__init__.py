"""
Studio

Visual workflow builder backend: graph model, layout and persistence for
agent workflows.
"""

__version__ = "0.1.0"
