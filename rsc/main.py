"""Served application.

Run with ``uvicorn rsc.main:app --port 8000`` (the address ``rsc`` CLI talks to
by default). The primary/fallback endpoints come from ``RSC_PRIMARY_URL`` and
``RSC_FALLBACK_URL``; the other ``RSC_*`` variables tune the controller.
"""
from __future__ import annotations

from .api import create_app

app = create_app()
