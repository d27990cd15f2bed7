"""WhatsApp Relay HTTP API."""
