# File: tests/coverage_report.py
#!/usr/bin/env python3
"""
Coverage report for the campus parking booking core.
Requires the test extra: pip install -e .[test]
"""

import sys
from pathlib import Path

import coverage

# Make run_tests importable when launched from the repository root
sys.path.append(str(Path(__file__).parent))


def generate_coverage_report(html_dir: str = "htmlcov", xml_file: str = "coverage.xml") -> bool:
    """Run every suite under coverage and write console, HTML and XML reports"""
    cov = coverage.Coverage(source=["campus_parking"], branch=True)
    cov.start()
    try:
        from run_tests import run_all_tests
        result = run_all_tests(verbosity=1)
    finally:
        cov.stop()
        cov.save()

    print("\n" + "=" * 60)
    print("campus_parking coverage")
    print("=" * 60)
    cov.report(show_missing=True)
    cov.html_report(directory=html_dir)
    print(f"HTML report written to {html_dir}/")
    cov.xml_report(outfile=xml_file)
    print(f"XML report written to {xml_file}")

    return result.wasSuccessful()


if __name__ == "__main__":
    sys.exit(0 if generate_coverage_report() else 1)
