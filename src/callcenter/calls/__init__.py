"""
Call history: CDR normalization, correlation, recordings and reports.

NOTE:
This package __init__ MUST be lightweight.
Do NOT import SQLAlchemy models here, otherwise importing any submodule
(e.g. callcenter.calls.normalizer) triggers ORM mapping at import time.
"""

__all__: list[str] = []
