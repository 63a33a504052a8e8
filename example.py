#!/usr/bin/env python3
"""
Example usage of the halolife package.
"""

from halolife import DistributedEngine, EngineConfig


def main():
    """Run a glider across four worker threads, editing and stopping it mid-run."""
    config = EngineConfig(grid_size=20, worker_count=4, generation_limit=40, pattern="Glider", pattern_x=2, pattern_y=2)
    engine = DistributedEngine(config)
    coordinator = engine.coordinator

    print("Initial state:")
    print(engine.grid)
    print(f"Partitions: {[(slot.row_offset, slot.row_count) for slot in engine.plan]}")
    print()

    def show(generation, snapshot):
        print(f"Generation {generation}: population {sum(snapshot)}")

        if generation == 4:
            # Drop a block in the far corner before the next scatter
            coordinator.submit_edits([(17, 17, 1), (18, 17, 1), (17, 18, 1), (18, 18, 1)])
        if generation == 12:
            coordinator.stop()

    coordinator.add_listener(show)
    result = engine.run()

    print()
    print(engine.grid)
    print(f"Finished after {result.generations} generations ({result.reason}), population {result.population}")


if __name__ == "__main__":
    main()
