#!/usr/bin/env python3
"""
Test runner for the ParkWise test suites.

    python tests/run_tests.py                 # unit + integration
    python tests/run_tests.py unit            # one suite
    python tests/run_tests.py unit.test_billing
"""

import unittest
import sys
from pathlib import Path

TESTS_DIR = Path(__file__).parent

# Add the src directory to the Python path
sys.path.insert(0, str(TESTS_DIR.parent / "src"))

SUITES = ("unit", "integration")


def run_all_tests(suites=SUITES):
    """Discover and run the given suites"""
    test_loader = unittest.TestLoader()
    test_suite = unittest.TestSuite()

    for suite in suites:
        test_suite.addTests(
            test_loader.discover(str(TESTS_DIR / suite), pattern='test_*.py', top_level_dir=str(TESTS_DIR))
        )

    test_runner = unittest.TextTestRunner(verbosity=2)
    return test_runner.run(test_suite)


def run_specific_test(test_name):
    """Run a single module (``unit.test_billing``) or test case (``unit.test_billing.TestBillingCalculator``)"""
    sys.path.insert(0, str(TESTS_DIR))
    test_suite = unittest.TestLoader().loadTestsFromName(test_name)
    test_runner = unittest.TextTestRunner(verbosity=2)
    return test_runner.run(test_suite)


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] in SUITES:
        result = run_all_tests([sys.argv[1]])
    elif len(sys.argv) > 1:
        result = run_specific_test(sys.argv[1])
    else:
        result = run_all_tests()

    sys.exit(0 if result.wasSuccessful() else 1)
