"""
CRM contacts and caller lookup.
"""

__all__: list[str] = []
