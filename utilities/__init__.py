"""
Shared utilities for the BookWorm API.
"""
