"""Ticket insights: resilient LLM orchestration for support-ticket analytics."""

__version__ = "0.1.0"
