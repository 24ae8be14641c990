#!/usr/bin/env python3
"""
Allocate randomly sized blocks of random bytes and report after each one.

Useful to see how the collector reacts to churn: --force-gc collects before
every round, --disable-gc turns automatic collection off for the run.
"""
import argparse
import gc
import logging
import random
import sys

from harness import MIB, ConfigError, env_int, load_config, setup_logging
from memory_report import MemoryReporter, ProcessMemorySource, labeled

logger = logging.getLogger(__name__)

DEFAULT_ROUNDS = 100
DEFAULT_MAX_MIB = 100
FILL_CHUNK = MIB


def random_block(rng, nbytes: int) -> bytearray:
    """A block of nbytes random bytes, filled in place one chunk at a time."""
    block = bytearray(nbytes)
    for offset in range(0, nbytes, FILL_CHUNK):
        size = min(FILL_CHUNK, nbytes - offset)
        block[offset:offset + size] = rng.randbytes(size)
    return block


class RandomFillDriver:
    def __init__(self, reporter, rounds=DEFAULT_ROUNDS, max_mib=DEFAULT_MAX_MIB,
                 force_gc=False, disable_gc=False, rng=None, allocate=None):
        if rounds < 1:
            raise ValueError(f"rounds must be at least 1, got {rounds}")
        if max_mib < 1:
            raise ValueError(f"max allocation must be at least 1MB, got {max_mib}")
        self.reporter = reporter
        self.rounds = rounds
        self.max_mib = max_mib
        self.force_gc = force_gc
        self.disable_gc = disable_gc
        self.rng = rng or random.Random()
        self.allocate = allocate or (lambda nbytes: random_block(self.rng, nbytes))

    def next_size_mib(self) -> int:
        return 1 + self.rng.randrange(self.max_mib)

    def report(self, block):
        self.reporter.print_report(extra_lines=[labeled("Allocated block", f"{len(block)} bytes")])

    def run(self) -> int:
        """Returns the number of allocation rounds performed."""
        gc_was_enabled = gc.isenabled()
        if self.disable_gc:
            print("Automatic GC disabled.")
            gc.disable()

        try:
            self.report(self.allocate(1))
            performed = 0
            for i in range(1, self.rounds):
                if self.force_gc:
                    print("Forcing garbage collection.")
                    collected = gc.collect()
                    logger.debug(f"gc.collect() found {collected} unreachable objects")

                size_mib = self.next_size_mib()
                print(labeled("Round", f"{i}/{self.rounds}"))
                print(labeled("Allocating", f"{size_mib}MB"))

                block = self.allocate(size_mib * MIB)
                self.report(block)
                del block
                performed += 1
        finally:
            if self.disable_gc and gc_was_enabled:
                gc.enable()

        print("Successfully finished.")
        return performed


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Allocate randomly sized blocks and report heap usage after each')
    parser.add_argument('-f', '--force-gc', action='store_true',
                        help='Force garbage collection before every round')
    parser.add_argument('-d', '--disable-gc', action='store_true',
                        help='Disable automatic garbage collection')
    parser.add_argument('--rounds', type=int,
                        default=env_int('RANDOM_FILL_ROUNDS', DEFAULT_ROUNDS),
                        help=f'Number of rounds, the first one being the baseline report (default: {DEFAULT_ROUNDS})')
    parser.add_argument('--max-mib', type=int,
                        default=env_int('RANDOM_FILL_MAX_MIB', DEFAULT_MAX_MIB),
                        help=f'Largest block to allocate in MiB (default: {DEFAULT_MAX_MIB})')
    return parser.parse_args(argv)


def main(argv=None):
    load_config()

    try:
        setup_logging()
        args = parse_args(argv)
        driver = RandomFillDriver(MemoryReporter(ProcessMemorySource()),
                                  rounds=args.rounds, max_mib=args.max_mib,
                                  force_gc=args.force_gc, disable_gc=args.disable_gc)
    except (ConfigError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    performed = driver.run()
    logger.info(f"Completed {performed} rounds")
    return 0


if __name__ == "__main__":
    sys.exit(main())
