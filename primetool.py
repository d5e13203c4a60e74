#!/usr/bin/env python3
"""
primetool.py

CLI for the per-core prime sweep:
  1) run            -> Split [0, DOMAIN_MAX) across every CPU core and write the
                       primes of each slice to PRIMES_THREAD_<n>.TXT (default)
  2) inspect-units  -> Show the execution units and NUMA topology

Running with no arguments is the same as `run` with its defaults: the whole
unsigned 64-bit domain, one worker per available core, output files in the
current directory. Send SIGQUIT (Ctrl-\\) or SIGINT (Ctrl-C) to stop every
worker cooperatively; files keep the primes found so far.

Exit status: 0 on success, 1 if core enumeration, a worker launch or a
worker join failed (or, with --strict, a worker could not write its file).
"""

import argparse
import logging
import sys

from primecores.assignment import DEFAULT_DOMAIN_MAX
from primecores.dispatcher import EXIT_FAILURE, EXIT_SUCCESS, DispatchConfig, Dispatcher
from primecores.errors import UnitCountError
from primecores.topology import investigate_numa_domains

LOG_FORMAT = "%(asctime)s %(levelname)s: %(message)s"


def configure_logging(verbose=False, log_file=None):
    level = logging.DEBUG if verbose else logging.INFO
    if log_file:
        logging.basicConfig(filename=log_file, level=level, format=LOG_FORMAT)
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT)


def config_from_args(args):
    return DispatchConfig(
        domain_max=args.domain_max,
        output_dir=args.output_dir,
        unit_count=args.units,
        stack_multiplier=args.stack_multiplier,
        clamp_last=not args.no_clamp,
        strict_outcomes=args.strict,
        pin_workers=not args.no_pin,
    )


def add_run_arguments(parser):
    parser.add_argument("--domain-max", type=int, default=DEFAULT_DOMAIN_MAX,
                        help="Exclusive upper bound of the search (default 2**64-1)")
    parser.add_argument("--output-dir", default=None,
                        help="Directory for PRIMES_THREAD_<n>.TXT (default: current directory)")
    parser.add_argument("--units", type=int, default=None,
                        help="Number of workers (default: detected cores)")
    parser.add_argument("--stack-multiplier", type=int, default=8,
                        help="Worker stack size as a multiple of the platform minimum")
    parser.add_argument("--no-clamp", action="store_true",
                        help="Do not extend the last worker's range to DOMAIN_MAX")
    parser.add_argument("--strict", action="store_true",
                        help="Fail if any worker cannot write its output file")
    parser.add_argument("--no-pin", action="store_true",
                        help="Do not bind workers to CPU cores")


def print_summary(dispatcher):
    for outcome in dispatcher.outcomes:
        if outcome.ok:
            suffix = " (cancelled)" if outcome.cancelled else ""
            print(f"[Primes] worker#{outcome.index}: found {outcome.primes_found} primes, "
                  f"last={outcome.last_candidate}, elapsed={outcome.elapsed:.2f}s{suffix}")
        else:
            print(f"[Primes] worker#{outcome.index}: FAILED ({outcome.reason})")


def run_command(args):
    dispatcher = Dispatcher(config_from_args(args))
    status = dispatcher.run()
    print_summary(dispatcher)
    if status != 0:
        print(f"[Primes] Run failed (state={dispatcher.state.value}).", file=sys.stderr)
    return status


def build_parser():
    parser = argparse.ArgumentParser(description="Per-core prime sweep")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--log-file", default=None, help="Write the log to this file")
    subparsers = parser.add_subparsers(dest="command")

    sp_run = subparsers.add_parser("run", help="Enumerate primes on every core (default)")
    add_run_arguments(sp_run)

    subparsers.add_parser("inspect-units", help="Show execution units and NUMA topology")
    return parser


def main(argv=None):
    argv = sys.argv[1:] if argv is None else list(argv)
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose, args.log_file)

    if args.command == "inspect-units":
        try:
            investigate_numa_domains()
        except UnitCountError as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_FAILURE
        return EXIT_SUCCESS

    if args.command is None:
        # no subcommand: run with every default
        args = parser.parse_args(argv + ["run"])
    return run_command(args)


if __name__ == "__main__":
    sys.exit(main())
