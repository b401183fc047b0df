"""
Integration Tests Package for Parking Billing

This package contains integration tests that verify the billing service,
the fee calculator and the rate/session stores work together correctly.

Integration tests focus on:
1. Entry, quote and exit workflows
2. Error handling across the service boundary
3. Database persistence inside a unit of work
"""

import sys
from pathlib import Path

# Add the project root to Python path for imports
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))
