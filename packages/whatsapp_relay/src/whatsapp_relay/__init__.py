"""
WhatsApp Relay Engine

Bridges a WhatsApp session (via a session client) to an automation
webhook, and exposes an outbound send API with admission checks.
"""

__version__ = "1.0.0"
