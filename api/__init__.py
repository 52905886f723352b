"""
Transport layer: Socket.IO intents and REST endpoints.
"""
