"""
Data models and the local durable store.
"""
