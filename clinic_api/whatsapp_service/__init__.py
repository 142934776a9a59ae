"""WhatsApp verification companion service."""
