"""Core domain package for wa-relay.

Core contains configuration shapes, filtering and routing logic without any
bridge, HTTP or file-system code, keeping the business logic portable.
"""
