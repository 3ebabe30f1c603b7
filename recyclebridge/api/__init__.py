"""HTTP facade."""

from .http_facade import create_app

__all__ = ['create_app']
