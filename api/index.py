"""
Vercel serverless entry point.

Wraps the Flask WSGI app for Vercel's Python runtime. Every /api/<handler>
request is rewritten to this function and routed by Flask.
"""

import sys
import os

# Ensure project root is on the Python path so imports resolve
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Import the fully-configured Flask app
from main import app

# Vercel expects the WSGI app as `app`
