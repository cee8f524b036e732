"""Fuzzing and enumeration tooling for the MDPU machine."""

from .fuzzer import (
    ExecutionResult, Success, ExceptionThrown, Crash,
    GeneratorConfig, FuzzingStatistics,
    run_fuzzer,
)

from .enumeration import (
    BOUNDARY_CONSTANTS,
    MINIMAL_CONSTANTS,
    generate_comprehensive_suite,
)
