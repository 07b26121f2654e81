"""Shared slowapi limiter. main.py registers it on app.state; routers decorate with @limiter.limit."""
from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
