"""
Lumist analytics backend.

Revenue, subscription, social media and SAT seat analytics served over FastAPI.
"""

__version__ = "1.0.0"
