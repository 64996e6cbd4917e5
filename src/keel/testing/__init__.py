"""Test utilities for keel applications.

    from keel.testing import TestClient
"""

from keel.testing.client import TestClient

__all__ = ["TestClient"]
