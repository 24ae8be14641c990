#!/usr/bin/env python3
"""
Fill memory in growing rounds up to a fixed ceiling, reporting after each round.

Round i allocates i * round_size MiB (the previous block is released first),
so the process peaks just below the ceiling and then exits cleanly.
"""
import argparse
import logging
import sys

from harness import MIB, ConfigError, allocate_block, env_int, load_config, setup_logging
from memory_report import MemoryReporter, ProcessMemorySource, labeled, memory_in_mib

logger = logging.getLogger(__name__)

DEFAULT_ROUND_SIZE_MIB = 10
DEFAULT_CEILING_MIB = 200


class CeilingDriver:
    def __init__(self, reporter, round_size_mib=DEFAULT_ROUND_SIZE_MIB,
                 ceiling_mib=DEFAULT_CEILING_MIB, allocate=allocate_block):
        if round_size_mib <= 0:
            raise ValueError(f"round size must be positive, got {round_size_mib}")
        if ceiling_mib < round_size_mib:
            raise ValueError(f"ceiling {ceiling_mib}MB is below the round size {round_size_mib}MB")
        self.reporter = reporter
        self.round_size_mib = round_size_mib
        self.ceiling_mib = ceiling_mib
        self.allocate = allocate

    def target_bytes(self, round_number: int) -> int:
        return round_number * self.round_size_mib * MIB

    def print_preamble(self):
        print(labeled("Allocation Limit", f"{self.ceiling_mib}MB"))
        print(labeled("Allocation/Round", f"{self.round_size_mib}MB"))
        print(labeled("Max Heap Size", memory_in_mib(self.reporter.max_memory())))
        print()

    def run(self) -> int:
        """Allocate round by round until the ceiling. Returns the number of rounds."""
        self.print_preamble()

        round_number = 1
        while round_number * self.round_size_mib <= self.ceiling_mib:
            target = self.target_bytes(round_number)
            print(labeled("Allocating Memory", memory_in_mib(target)))
            block = self.allocate(target)
            self.reporter.print_report()
            logger.debug(f"Round {round_number}: holding {len(block)} bytes")
            # release before the next, bigger round
            del block
            round_number += 1

        print(f"Finished - Allocated max possible amount less than {self.ceiling_mib}MB.")
        return round_number - 1


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Allocate memory in growing rounds up to a ceiling and report heap usage')
    parser.add_argument('--round-size', type=int,
                        default=env_int('FILL_ROUND_MIB', DEFAULT_ROUND_SIZE_MIB),
                        help=f'MiB added per round (default: {DEFAULT_ROUND_SIZE_MIB})')
    parser.add_argument('--ceiling', type=int,
                        default=env_int('FILL_CEILING_MIB', DEFAULT_CEILING_MIB),
                        help=f'Stop once the next round would exceed this many MiB (default: {DEFAULT_CEILING_MIB})')
    return parser.parse_args(argv)


def main(argv=None):
    load_config()

    try:
        setup_logging()
        args = parse_args(argv)
        driver = CeilingDriver(MemoryReporter(ProcessMemorySource()),
                               round_size_mib=args.round_size, ceiling_mib=args.ceiling)
    except (ConfigError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    rounds = driver.run()
    logger.info(f"Completed {rounds} rounds")
    return 0


if __name__ == "__main__":
    sys.exit(main())
