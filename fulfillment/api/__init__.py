# fulfillment/api/__init__.py
"""
HTTP API (FastAPI).
"""
