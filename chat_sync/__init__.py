"""Conversation and message synchronization for multi-channel support queues"""

__version__ = "0.1.0"
