#!/usr/bin/env python3
"""Test runner for Inkwell with coverage reporting."""

import sys
import subprocess
import os
from pathlib import Path


def run_tests():
    """Run all tests with coverage reporting."""

    # Change to the project directory
    os.chdir(Path(__file__).parent)

    print("Running Inkwell Test Suite")
    print("=" * 50)

    print("Installing test requirements...")
    try:
        subprocess.run([
            sys.executable, "-m", "pip", "install", "-r", "requirements-test.txt"
        ], check=True, capture_output=True)
        print("Test requirements installed successfully")
    except subprocess.CalledProcessError as e:
        print(f"Failed to install test requirements: {e}")
        return False

    print("\nRunning tests with coverage...")
    result = subprocess.run([
        sys.executable, "-m", "pytest",
        "tests/",
        "-v",
        "--cov=inkwell",
        "--cov-report=term-missing",
        "--cov-fail-under=80"
    ], check=False)

    if result.returncode == 0:
        print("\nAll tests passed!")
        return True
    print("\nSome tests failed. Please review the output above.")
    return False


def main():
    """Main test runner."""
    return 0 if run_tests() else 1


if __name__ == "__main__":
    sys.exit(main())
