"""Core domain package for the chain detector.

Core contains detection, reconciliation, and scan scheduling logic without
any Telegram, HTTP, or storage-specific code, keeping the business logic
portable.
"""
