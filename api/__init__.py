"""
FastAPI RESTful API for the BookWorm reading tracker.

This module provides a REST API for:
- Shelving books in a personal library
- Reader statistics and author dashboards
- User registration, login and profile updates
"""
