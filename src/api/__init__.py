"""HTTP API over the game controller"""

from .app import create_app

__all__ = ["create_app"]
