"""Command line entry points for inspecting grant resolution.

Each command synthesizes a CDK app and prints resolved policy documents,
the grant log or a stack template as JSON.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
