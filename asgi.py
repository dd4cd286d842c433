"""
asgi.py -- ASGI entry point.

Settings are read from the environment when this module is imported, so a
missing JWT secret fails here, before the server accepts connections.

Run with:  uvicorn asgi:app --reload
           python main.py serve
"""

from api.main import create_app

app = create_app()
