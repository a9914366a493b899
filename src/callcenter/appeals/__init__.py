"""
Appeal (interaction annotation) store.
"""

__all__: list[str] = []
