"""CLI entry point to run a soft-body / fluid scene."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from tqdm import tqdm

from .logging_config import setup_logging
from .physics_world.solvers.pbd.backend import BackendInitializationError
from .world_container import WorldContainer

logger = logging.getLogger("softfluid.cli")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="softfluid", description="Run the soft-body / PBD fluid simulation")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config/scene_config.yaml"),
        help="Path to the scene configuration YAML file.",
    )
    parser.add_argument("--steps", type=int, default=None, help="Optional override for number of steps")
    parser.add_argument(
        "--backend",
        choices=("numpy", "taichi"),
        default=None,
        help="Compute backend for the fluid solver (overrides the scene file)",
    )
    parser.add_argument(
        "--arch",
        choices=("cpu", "gpu", "cuda", "vulkan", "metal"),
        default=None,
        help="Taichi arch when --backend taichi is used",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...)")
    parser.add_argument("--log-file", default=None, help="Optional file that receives a copy of the log")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(getattr(logging, args.log_level.upper(), logging.INFO), args.log_file)

    try:
        container = WorldContainer.from_config_file(args.config, backend=args.backend, arch=args.arch)
    except BackendInitializationError as exc:
        logger.error("Compute backend unavailable: %s", exc)
        return 1

    steps = args.steps if args.steps is not None else container.config.simulation.total_steps
    snapshot = None
    for _ in tqdm(range(steps), desc="Simulating"):
        snapshot = container.step()

    if snapshot is not None:
        for body in snapshot.soft_bodies:
            logger.info("%s: bounds %s to %s", body.name, body.bounds.bounds_min, body.bounds.bounds_max)
        if snapshot.fluid is not None:
            positions = snapshot.fluid.positions
            logger.info(
                "fluid: %d particles, extent %s to %s",
                snapshot.fluid.particle_count(), positions.min(axis=0).tolist(), positions.max(axis=0).tolist(),
            )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
