"""
Tripwire test suite.

Tests are organized by layer:
    tests/unit/         Building blocks: spans, patterns, grammars, config, hook protocol
    tests/rules/        Rule parsing, compilation, evaluation and discovery
    tests/integration/  The click CLI end to end (CliRunner)

Run all tests:
    pytest

Run unit tests only:
    pytest tests/unit/
"""
