"""Fuzzing framework for WordVM."""

from .fuzzer import (
    ExecutionResult, Success, Fault, Timeout, Crash,
    FuzzCase, GeneratorConfig, FuzzingStatistics, fits_layout,
    execute_with_budget,
    run_fuzzer,
)

from .expression import (
    Expr, Const, Add, Sub, Mul, Div,
    evaluate,
    compile_expr_to_instructions,
    compile_expr,
    random_expr,
)
