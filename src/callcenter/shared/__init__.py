"""
Shared utilities and infrastructure components (config-aware logging,
database managers, base exceptions).
"""
