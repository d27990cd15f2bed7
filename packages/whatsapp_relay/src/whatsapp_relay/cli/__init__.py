"""WhatsApp Relay command-line interface."""
