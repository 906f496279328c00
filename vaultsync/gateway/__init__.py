"""
vaultsync Gateway Module - HTTP service
"""

from .service import create_app, main

__all__ = ['create_app', 'main']
