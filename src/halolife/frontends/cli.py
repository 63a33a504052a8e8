"""Command-line interface for the distributed Game of Life engine."""

import argparse
import logging
import sys
from typing import List, Optional

from ..core.grid import Grid
from ..core.patterns import PatternLibrary
from ..distributed.coordinator import RunResult
from ..distributed.engine import BACKENDS, DistributedEngine, EngineConfig, build_grid
from ..distributed.errors import EngineError


def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser.

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        description="Run a partitioned Game of Life across worker threads or processes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # 100x100 grid, 4 worker threads, 500 generations, 20% random population
  halolife --size 100 --workers 4 --generations 500 --population 0.2

  # Glider on a 20x20 grid split across 3 worker processes
  halolife -s 20 -w 3 --pattern Glider --backend processes --show-grid

  # MPI: one coordinator rank plus four worker ranks
  mpiexec -n 5 halolife --backend mpi --size 100

  # List available patterns
  halolife --list-patterns
        """,
    )

    parser.add_argument("-s", "--size", type=int, default=100, help="Grid height and width (default: 100)")
    parser.add_argument("-w", "--workers", type=int, default=4, help="Number of partition workers (default: 4)")
    parser.add_argument(
        "-g", "--generations", type=int, default=500, help="Number of generations to run (default: 500)"
    )
    parser.add_argument(
        "-b",
        "--backend",
        choices=list(BACKENDS) + ["mpi"],
        default="threads",
        help="Where workers run (default: threads)",
    )
    parser.add_argument(
        "-p",
        "--population",
        type=float,
        default=0.2,
        help="Initial random population rate 0.0-1.0 (default: 0.2)",
    )
    parser.add_argument("--pattern", type=str, help="Pattern to load instead of a random population")
    parser.add_argument("--pattern-x", type=int, default=0, help="X offset for pattern placement (default: 0)")
    parser.add_argument("--pattern-y", type=int, default=0, help="Y offset for pattern placement (default: 0)")
    parser.add_argument("--seed", type=int, help="Random seed for the initial population")
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Seconds any phase may block before the run aborts; 0 waits forever (default: 30)",
    )
    parser.add_argument("--show-grid", action="store_true", help="Show initial and final grid states")
    parser.add_argument("--list-patterns", action="store_true", help="List available patterns and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    return parser


def validate_args(args: argparse.Namespace) -> bool:
    """Validate command-line arguments.

    Worker count against grid size is checked by the partition planner.

    Returns:
        True if arguments are valid
    """
    errors = []

    if args.size <= 0:
        errors.append("Size must be positive")

    if args.generations < 0:
        errors.append("Generations must be non-negative")

    if not 0.0 <= args.population <= 1.0:
        errors.append("Population rate must be between 0.0 and 1.0")

    if args.pattern_x < 0:
        errors.append("Pattern X offset must be non-negative")

    if args.pattern_y < 0:
        errors.append("Pattern Y offset must be non-negative")

    if args.timeout < 0:
        errors.append("Timeout must be non-negative")

    if errors:
        print("Error: Invalid arguments:")
        for error in errors:
            print(f"  - {error}")
        return False

    return True


def config_from_args(args: argparse.Namespace) -> EngineConfig:
    return EngineConfig(
        grid_size=args.size,
        worker_count=args.workers,
        generation_limit=args.generations,
        phase_timeout=args.timeout or None,
        population_rate=args.population,
        pattern=args.pattern,
        pattern_x=args.pattern_x,
        pattern_y=args.pattern_y,
        seed=args.seed,
    )


def format_grid(grid: Grid, max_size: int = 50) -> str:
    """Format grid for display, or a notice if it's too large."""
    if grid.width > max_size or grid.height > max_size:
        return f"Grid too large to display ({grid.width}x{grid.height})"
    return str(grid)


def list_patterns(library: PatternLibrary) -> None:
    """List available patterns by category."""
    print("Available patterns:")
    for category, names in library.get_patterns_by_category().items():
        print(f"\n{category}:")
        for name in names:
            pattern = library.get_pattern(name)
            if pattern:
                size = pattern.get_size()
                print(f"  {name}: {size[0]}x{size[1]}, {len(pattern.cells)} cells")
                if pattern.description:
                    print(f"    {pattern.description}")


def print_results(result: RunResult, grid_size: int, initial_population: int) -> None:
    """Print run results."""
    print(
        f"Total duration for {result.generations} generations with {grid_size}x{grid_size} grid "
        f"is {result.total_duration_ms:.0f} milliseconds."
    )
    print(f"Step time: {result.step_duration_ms:.0f} milliseconds (slowest worker per generation).")
    if result.reason == "stopped":
        print("Finish reason: Stopped by control input")
    else:
        print("Finish reason: Generation limit reached")
    print(f"Population: {initial_population} → {result.population}")


def _run_mpi(config: EngineConfig, args: argparse.Namespace) -> int:
    from ..distributed.mpi_channel import run_mpi

    grid = build_grid(config)
    initial_population = grid.population
    result = run_mpi(config, grid)
    if result is None:
        return 0

    if args.show_grid:
        print(f"\nFinal grid:\n{format_grid(grid)}")
    print_results(result, config.grid_size, initial_population)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI interface.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(processName)s %(name)s %(levelname)s: %(message)s",
    )

    if args.list_patterns:
        list_patterns(PatternLibrary())
        return 0

    if not validate_args(args):
        return 1

    config = config_from_args(args)

    try:
        if args.backend == "mpi":
            return _run_mpi(config, args)

        engine = DistributedEngine(config, backend=args.backend)
        initial_population = engine.grid.population

        if args.show_grid:
            print(f"Initial grid:\n{format_grid(engine.grid)}\n")

        result = engine.run()

        if args.show_grid:
            print(f"Final grid:\n{format_grid(engine.grid)}\n")

        print_results(result, config.grid_size, initial_population)
        return 0

    except KeyboardInterrupt:
        print("\nSimulation interrupted by user")
        return 1
    except (EngineError, ValueError) as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
