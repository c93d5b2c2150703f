from .connection import Base, ConnectionProvider, build_engine

__all__ = ['Base', 'ConnectionProvider', 'build_engine']
