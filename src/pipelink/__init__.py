"""Pipelink - client for opcode-framed local IPC sessions."""

__version__ = "0.1.0"
