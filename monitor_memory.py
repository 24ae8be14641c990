#!/usr/bin/env python3
"""
Watch memory while allocating ever larger blocks.

Iteration i reports, allocates i MiB, reports again and pauses. With the
default 100 iterations this is meant to run into memory exhaustion on a
constrained host; the resulting MemoryError is not caught.
"""
import argparse
import logging
import sys

from harness import MIB, ConfigError, Pacer, allocate_block, env_int, load_config, setup_logging
from memory_report import MemoryReporter, ProcessMemorySource, labeled, memory_in_mib

logger = logging.getLogger(__name__)

DEFAULT_ITERATIONS = 100
DEFAULT_DELAY_MS = 1000


class GrowthDriver:
    def __init__(self, reporter, iteration_count=DEFAULT_ITERATIONS, delay_ms=DEFAULT_DELAY_MS,
                 allocate=allocate_block, pacer=None):
        if iteration_count < 0:
            raise ValueError(f"iteration count must not be negative, got {iteration_count}")
        if delay_ms < 0:
            raise ValueError(f"delay must not be negative, got {delay_ms}")
        self.reporter = reporter
        self.iteration_count = iteration_count
        self.delay_ms = delay_ms
        self.allocate = allocate
        self.pacer = pacer or Pacer()

    @staticmethod
    def block_size(iteration: int) -> int:
        return iteration * MIB

    def run(self) -> int:
        """Returns the number of iterations completed."""
        print(labeled("Max Heap Size", memory_in_mib(self.reporter.max_memory())))

        completed = 0
        for i in range(self.iteration_count):
            self.reporter.print_report(footer=False)
            block = self.allocate(self.block_size(i))
            self.reporter.print_report(footer=False)
            completed += 1
            logger.debug(f"Iteration {i}: holding {len(block)} bytes")

            # the block stays live through the pause
            cancelled = self.pacer.wait(self.delay_ms / 1000)
            del block
            if cancelled:
                logger.info(f"Monitoring cancelled after {completed} iterations")
                break
        return completed


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Report heap usage around ever larger allocations')
    parser.add_argument('--iterations', type=int,
                        default=env_int('MONITOR_ITERATIONS', DEFAULT_ITERATIONS),
                        help=f'Number of allocate-and-report iterations (default: {DEFAULT_ITERATIONS})')
    parser.add_argument('--delay-ms', type=int,
                        default=env_int('MONITOR_DELAY_MS', DEFAULT_DELAY_MS),
                        help=f'Pause between iterations in milliseconds (default: {DEFAULT_DELAY_MS})')
    return parser.parse_args(argv)


def main(argv=None):
    load_config()

    try:
        setup_logging()
        args = parse_args(argv)
        driver = GrowthDriver(MemoryReporter(ProcessMemorySource()),
                              iteration_count=args.iterations, delay_ms=args.delay_ms)
    except (ConfigError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    completed = driver.run()
    logger.info(f"Completed {completed} iterations")
    return 0


if __name__ == "__main__":
    sys.exit(main())
