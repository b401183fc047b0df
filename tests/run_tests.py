# File: tests/run_tests.py
#!/usr/bin/env python3
"""
Test runner for Parking Billing tests.

Usage:
    python tests/run_tests.py                      # all tests
    python tests/run_tests.py unit.test_models     # one module
    python tests/run_tests.py unit.test_models.TestParkingSession
"""

import unittest
import sys
from pathlib import Path

# Add the project root to the Python path
sys.path.append(str(Path(__file__).parent.parent))


def run_all_tests():
    """Run all test suites"""
    test_loader = unittest.TestLoader()

    # Discover unit and integration tests below this directory
    start_dir = str(Path(__file__).parent)
    top_level_dir = str(Path(__file__).parent.parent)
    test_suite = test_loader.discover(start_dir, pattern='test_*.py', top_level_dir=top_level_dir)

    test_runner = unittest.TextTestRunner(verbosity=2)
    return test_runner.run(test_suite)


def run_specific_test(test_name):
    """Run a specific test module or test case"""
    test_loader = unittest.TestLoader()
    test_suite = test_loader.loadTestsFromName(f'tests.{test_name}')

    test_runner = unittest.TextTestRunner(verbosity=2)
    return test_runner.run(test_suite)


if __name__ == "__main__":
    if len(sys.argv) > 1:
        # Run specific test
        result = run_specific_test(sys.argv[1])
    else:
        # Run all tests
        result = run_all_tests()

    # Exit with appropriate code
    sys.exit(0 if result.wasSuccessful() else 1)
