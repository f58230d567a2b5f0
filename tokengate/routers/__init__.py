"""
FastAPI routers grouped por domínio.

Each file inside this package exposes an APIRouter included by the application
factory (app.py).
"""
