"""Stub session client."""

from whatsapp_relay.providers.stub.client import StubSessionClient

__all__ = ["StubSessionClient"]
