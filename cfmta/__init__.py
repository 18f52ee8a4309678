"""
cfmta - Multi-Target Application deployments on Cloud Foundry.
"""

__version__ = "0.9.0"
