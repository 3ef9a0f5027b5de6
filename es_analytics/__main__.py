"""
Entry point for running the analytics server as a module.

This allows running the server with: python -m es_analytics
"""

from .server import main

if __name__ == "__main__":
    main()
