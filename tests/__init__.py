"""
Test suite for MediAssist Core.

Covers per-role session issuance and validation, slot availability and
reservation, and the HTTP surface in front of them.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
