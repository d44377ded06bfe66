"""
Aura — avatar generation backend.

Turns structured avatar requests into images through a chain of external
image-generation vendors, gates generation behind a credit/premium economy
and ranks the resulting content socially.
"""

__version__ = "1.0.0"
