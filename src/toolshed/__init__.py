"""
toolshed - Tool runtime for LLM agents.

Agents call tools; some tools ship with toolshed, others are installed at
runtime from a remote registry as versioned, untrusted code bundles.
toolshed provides:
- A strict registry client (search, describe, download)
- A versioned local tool store with path-safety guarantees
- An invocation pipeline that gates every call behind declared secrets
  and human approval, and logs every outcome

Example usage:
    $ toolshed registry search weather
    $ toolshed tools install weather
    $ toolshed invoke weather --input '{"city": "Oslo"}'
    $ toolshed chat
"""

__version__ = "0.1.0"
__author__ = "toolshed Contributors"

__all__ = [
    "__version__",
    "__author__",
]
