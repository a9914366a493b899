"""
Call correlation and live operator session engine.

Package import side-effects are kept to a minimum: submodules are imported
explicitly by their consumers.
"""

__version__ = "0.1.0"
