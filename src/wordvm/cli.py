"""
Command line host for WordVM.

    wordvm run program.bin          run a program file (.hex for hex text)
    wordvm demo countdown           run a bundled program
    wordvm fuzz -n 500 -s 1         fuzz the machine
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from . import __version__
from .errors import WordVMException
from .fuzzing.fuzzer import GENERATORS, GeneratorConfig, run_fuzzer
from .loader import read_program_file
from .machine import Faulted, Machine
from .memory import MemoryLayout, VM_MEMORY_SIZE, INSTRUCTION_POINTER_OFFSET, PROGRAM_MEMORY_OFFSET
from .output import StreamSink
from .programs import countdown, hello_world

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAULT = 1
EXIT_INVALID_INPUT = 2

DEMOS = {
    'countdown': countdown,
    'hello': hello_world,
}


def setup_logging(debug: bool = False, quiet: bool = False) -> None:
    """
    Send package logs to stderr; stdout carries program output.

    DEBUG=1 in the environment also enables tracing.
    """
    if quiet:
        level = logging.ERROR
    elif debug or os.environ.get('DEBUG') == '1':
        level = logging.DEBUG
    else:
        level = logging.WARNING

    package_logger = logging.getLogger('wordvm')
    for old in package_logger.handlers[:]:
        package_logger.removeHandler(old)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    package_logger.addHandler(handler)
    package_logger.setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='wordvm', description="WordVM stack machine")
    parser.add_argument('--version', action='version', version=f'wordvm {__version__}')
    parser.add_argument('--debug', action='store_true',
                        help='Trace every executed instruction')
    parser.add_argument('--quiet', '-q', action='store_true',
                        help='Only log errors')
    parser.add_argument('--mem-size', type=int, default=VM_MEMORY_SIZE,
                        help='Total memory in words (default: %(default)s)')
    parser.add_argument('--stack-limit', type=int, default=INSTRUCTION_POINTER_OFFSET,
                        help='First instruction address (default: %(default)s)')
    parser.add_argument('--data-base', type=int, default=PROGRAM_MEMORY_OFFSET,
                        help='First program data address (default: %(default)s)')

    subparsers = parser.add_subparsers(dest='command', required=True)

    run_parser = subparsers.add_parser('run', help='Run a program file')
    run_parser.add_argument('path', help='Program file: big-endian words, or .hex with one word per line')

    demo_parser = subparsers.add_parser('demo', help='Run a bundled program')
    demo_parser.add_argument('name', choices=sorted(DEMOS), help='Program to run')

    fuzz_parser = subparsers.add_parser('fuzz', help='Fuzz the machine')
    fuzz_parser.add_argument(
        "-n", "--num-tests",
        type=int,
        default=1000,
        help="Number of random test cases to run (default: %(default)s)"
    )
    fuzz_parser.add_argument(
        "-s", "--seed",
        type=int,
        default=None,
        help="Random seed for reproducibility"
    )
    fuzz_parser.add_argument(
        "-g", "--generator",
        type=str,
        default="mixed",
        choices=list(GENERATORS),
        help="Generator type (default: %(default)s)"
    )
    fuzz_parser.add_argument(
        "--max-steps",
        type=int,
        default=GeneratorConfig.max_steps,
        help="Step budget per program (default: %(default)s)"
    )

    return parser


def run_words(words: List[int], layout: MemoryLayout) -> int:
    vm = Machine(layout=layout, sink=StreamSink(sys.stdout))
    vm.load_program(words)
    logger.debug("Running %d words with %s", len(words), layout)
    outcome = vm.run()
    if isinstance(outcome, Faulted):
        print(f"\nwordvm: fault: {outcome.error}", file=sys.stderr)
        return EXIT_FAULT
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(debug=args.debug, quiet=args.quiet)

    try:
        layout = MemoryLayout(args.mem_size, args.stack_limit, args.data_base)
        if args.command == 'fuzz':
            stats = run_fuzzer(
                num_tests=args.num_tests,
                seed=args.seed,
                generator=args.generator,
                config=GeneratorConfig(max_steps=args.max_steps, layout=layout),
            )
            return EXIT_OK if stats.bugs_found == 0 else EXIT_FAULT
        if args.command == 'run':
            words = read_program_file(args.path)
        else:
            words = DEMOS[args.name]()
        return run_words(words, layout)
    except (WordVMException, ValueError, OSError) as e:
        # Faults while loading (program too long) land here too.
        print(f"wordvm: error: {e}", file=sys.stderr)
        return EXIT_INVALID_INPUT


if __name__ == '__main__':
    sys.exit(main())
