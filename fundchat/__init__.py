"""
fundchat package initializer

Keep this module lightweight. Do not import the web stack here, so the
storage and runtime engines can be used without FastAPI being importable.
"""

__all__ = []
