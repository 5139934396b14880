"""Launch several range-processing workers from one host."""

from __future__ import annotations

import logging
import multiprocessing as mp
import sys
from typing import TYPE_CHECKING, Callable, List

from setproctitle import setproctitle

from ring_processor.config import WorkerPoolConfig
from ring_processor.errors import ProcessingHalted
from .logger import setup_logger

if TYPE_CHECKING:
    from .range_manager import RangeManager

logger = logging.getLogger(__name__)

__all__ = ["instance_names", "run_instance", "run_instances", "EXIT_OK", "EXIT_CRASHED", "EXIT_HALTED"]

EXIT_OK = 0
EXIT_CRASHED = 1
EXIT_HALTED = 2

# Builds a fully wired RangeManager for one instance name. Must be picklable
# (a module-level function or functools.partial of one) for spawn.
ManagerFactory = Callable[[str], "RangeManager"]


def instance_names(pool_config: WorkerPoolConfig) -> List[str]:
    """
    Names for each instance: the configured name first, then inst2..instN.

    Example:
        >>> instance_names(WorkerPoolConfig(num_instances=3))
        ['', 'inst2', 'inst3']
    """
    names = [pool_config.instance_name]
    names.extend(f"inst{i}" for i in range(2, pool_config.num_instances + 1))
    return names


def run_instance(factory: ManagerFactory, instance_name: str, pool_config: WorkerPoolConfig) -> int:
    """
    Run one worker until the range table is drained.

    Returns:
        Exit code (EXIT_OK, EXIT_HALTED or EXIT_CRASHED)
    """
    setproctitle(f"rp:worker[{instance_name or 'main'}]")

    if pool_config.log_dir is not None:
        setup_logger(
            pool_config.log_dir,
            instance_name=instance_name,
            console=pool_config.console_log,
            force=True,
        )

    try:
        manager = factory(instance_name)
        summary = manager.process_all()
    except ProcessingHalted as e:
        logger.error("Instance %s halted: %s", instance_name or "main", e)
        return EXIT_HALTED
    except Exception:
        logger.exception("Instance %s crashed", instance_name or "main")
        return EXIT_CRASHED

    logger.info(
        "Instance %s done: %d ranges completed, %d requeued, %d failed",
        instance_name or "main", summary.completed, summary.requeued, summary.failed
    )
    return EXIT_OK


def _instance_main(factory: ManagerFactory, instance_name: str, pool_config: WorkerPoolConfig) -> None:
    sys.exit(run_instance(factory, instance_name, pool_config))


def run_instances(factory: ManagerFactory, pool_config: WorkerPoolConfig) -> List[int]:
    """
    Run `num_instances` workers, one per OS process, and wait for all of them.

    A single instance runs in the calling process.

    Args:
        factory: Builds the RangeManager for an instance name
        pool_config: Instance count, naming, start method and logging

    Returns:
        Exit code of each instance, in launch order
    """
    names = instance_names(pool_config)
    if len(names) == 1:
        return [run_instance(factory, names[0], pool_config)]

    ctx = mp.get_context(pool_config.start_method)
    processes = []

    for name in names:
        process = ctx.Process(
            target=_instance_main,
            args=(factory, name, pool_config),
            name=f"rp:worker-{name or 'main'}"
        )
        process.start()
        processes.append(process)

    for process in processes:
        process.join()

    exit_codes = [process.exitcode for process in processes]
    failed = [name or "main" for name, code in zip(names, exit_codes) if code != EXIT_OK]
    if failed:
        logger.error("%d instances exited with errors: %s", len(failed), ", ".join(failed))
    return exit_codes
