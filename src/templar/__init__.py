"""templar - template version and dependency resolution engine

Philosophy:
- Ruthless simplicity
- Brick architecture (self-contained modules)
- Fail fast with typed errors

templar tracks semantically-versioned templates, resolves version
constraints across template dependencies, reports conflicts, checks
environment compatibility, and applies migrations between versions.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
