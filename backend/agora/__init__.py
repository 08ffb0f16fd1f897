"""
Agora Forum Backend.
"""

__version__ = "1.0.0"
