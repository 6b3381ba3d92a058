"""Delimiters for the machine-readable result block in program output."""

START_MARKER = "<<<__POLYGLOT_RESULTS_BEGIN_7f3a9c1e__>>>"
END_MARKER = "<<<__POLYGLOT_RESULTS_END_7f3a9c1e__>>>"
