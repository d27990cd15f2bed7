"""
Shared runtime utilities (settings, logging) for relay services.
"""
