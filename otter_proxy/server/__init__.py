"""HTTP proxy package: FastAPI app, session store and rate limiting.

Run with ``otter-proxy serve`` or ``uvicorn otter_proxy.server.app:app``.
"""
