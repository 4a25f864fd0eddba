"""
Settings entry point that picks the environment module from DJANGO_ENV.
"""
import os

if os.environ.get("DJANGO_ENV", "development") == "production":
    from .production import *
else:
    from .development import *
