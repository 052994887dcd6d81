"""
Pytest configuration loaded before any test module.
Forces the testing configuration so the app binds to in-memory SQLite.
"""
import os

# Set testing environment before importing app
os.environ["TESTING"] = "True"
os.environ["DEBUG"] = "False"
os.environ.setdefault("MONNIFY_SECRET_KEY", "test-monnify-secret")
