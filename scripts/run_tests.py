#!/usr/bin/env python3
"""
Test runner for Beat Party
Runs the whole suite, or the test classes whose name ends with the given suffix
"""

import os
import sys
import unittest

ROOT = os.path.join(os.path.dirname(os.path.abspath(__file__)), '..')
TESTS_DIR = os.path.join(ROOT, 'tests')

# tests import helpers.py by name; src/ is added by helpers itself
sys.path.insert(0, TESTS_DIR)


def _print_summary(result):
    print("\n" + "=" * 50)
    print("📊 Test Results Summary:")
    print(f"   Tests Run: {result.testsRun}")
    print(f"   Failures: {len(result.failures)}")
    print(f"   Errors: {len(result.errors)}")
    print(f"   Skipped: {len(result.skipped)}")

    if result.failures:
        print("\n❌ Failures:")
        for test, traceback in result.failures:
            print(f"   - {test}: {traceback.split('AssertionError:')[-1].strip()}")

    if result.errors:
        print("\n💥 Errors:")
        for test, traceback in result.errors:
            print(f"   - {test}: {traceback.strip().splitlines()[-1]}")


def _iter_cases(suite):
    for item in suite:
        if isinstance(item, unittest.TestSuite):
            yield from _iter_cases(item)
        else:
            yield item


def run_all_tests(pattern=None):
    """Discover tests/ and run everything, or only classes ending in pattern"""
    if not os.path.exists(TESTS_DIR):
        print(f"❌ Tests directory not found: {TESTS_DIR}")
        return False

    suite = unittest.TestLoader().discover(TESTS_DIR, pattern='test_*.py')
    if pattern:
        print(f"🧪 Running tests matching: {pattern}")
        suite = unittest.TestSuite(
            case for case in _iter_cases(suite) if type(case).__name__.endswith(pattern)
        )
        if suite.countTestCases() == 0:
            print(f"❌ Test class not found: {pattern}")
            return False
    else:
        print("🧪 Running Beat Party Test Suite...")
    print("=" * 50)

    result = unittest.TextTestRunner(verbosity=2).run(suite)
    _print_summary(result)

    if result.wasSuccessful():
        print("\n✅ All tests passed!")
        return True
    print("\n❌ Some tests failed.")
    return False


def main():
    print("🎵 Beat Party Test Runner")
    print("=" * 50)
    success = run_all_tests(sys.argv[1] if len(sys.argv) > 1 else None)
    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
