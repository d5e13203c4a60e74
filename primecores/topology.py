"""
topology.py

Execution-unit discovery and core pinning.

Uses py-libnuma when both the Python bindings and the system library
libnuma.so are present; otherwise falls back to the process affinity mask
(os.sched_getaffinity) and finally to multiprocessing.cpu_count().

Usage in code:
  from primecores.topology import available_units, pin_to_unit
  units = available_units()
  pin_to_unit(pid, units[0])
"""

import logging
import multiprocessing
import os

from primecores.errors import UnitCountError

try:
    from numa import info, memory
    has_pynuma = True
except (ImportError, OSError):
    has_pynuma = False

logger = logging.getLogger(__name__)

# PTHREAD_STACK_MIN on glibc
FALLBACK_STACK_MIN = 16384
# threading.stack_size() rejects anything smaller
THREAD_STACK_FLOOR = 32768
PAGE_SIZE = 4096


def check_libnuma_so():
    """
    Return True if system library 'libnuma.so' is found, else False.
    Typically installed by:
      - Ubuntu/Debian: apt-get install -y numactl libnuma-dev
      - RHEL/CentOS:   yum install -y numactl numactl-devel
    """
    possible_paths = [
        "/usr/lib/libnuma.so",
        "/usr/lib64/libnuma.so",
        "/lib/x86_64-linux-gnu/libnuma.so",
        "/usr/lib/x86_64-linux-gnu/libnuma.so",
        "/lib64/libnuma.so"
    ]
    return any(os.path.exists(p) for p in possible_paths)


def numa_available():
    return has_pynuma and check_libnuma_so()


def _numa_units():
    cpus = set()
    for node_id in range(info.get_max_node() + 1):
        cpus.update(info.node_to_cpus(node_id))
    return cpus


def available_units():
    """
    Return the sorted CPU ids this process may run on.

    Worker i is bound to available_units()[i], so on a machine where the
    affinity mask is {2, 3, 6, 7} worker 0 runs on CPU 2.

    Raises UnitCountError if nothing can be enumerated.
    """
    units = None
    if hasattr(os, "sched_getaffinity"):
        try:
            units = set(os.sched_getaffinity(0))
        except OSError as e:
            logger.warning(f"[Topology] sched_getaffinity failed: {e}")

    if numa_available():
        try:
            numa_cpus = _numa_units()
            # respect cgroup/taskset restrictions when both are known
            units = (numa_cpus & units) if units else numa_cpus
        except Exception as e:
            logger.warning(f"[Topology] py-libnuma could not list CPUs: {e}")

    if not units:
        try:
            units = set(range(multiprocessing.cpu_count()))
        except NotImplementedError as e:
            raise UnitCountError(f"Can't enumerate number of CPU cores: {e}") from e

    if len(units) < 1:
        raise UnitCountError("Can't enumerate number of CPU cores.")
    return sorted(units)


def pinning_supported():
    return hasattr(os, "sched_setaffinity")


def pin_to_unit(pid, cpu):
    """
    Restrict process `pid` to the single CPU `cpu`.
    Raises OSError if the kernel refuses the mask.
    """
    os.sched_setaffinity(pid, {cpu})


def node_of_unit(cpu):
    """Return the NUMA node hosting `cpu`, or None when unknown."""
    if not numa_available():
        return None
    for node_id in range(info.get_max_node() + 1):
        if cpu in info.node_to_cpus(node_id):
            return node_id
    return None


def bind_memory_to_unit(cpu, label=""):
    """
    Best effort: keep the calling process's allocations on the NUMA node of
    `cpu`. Silently a no-op without py-libnuma.
    """
    if not numa_available():
        return
    try:
        node_id = node_of_unit(cpu)
        if node_id is not None:
            memory.set_membind_nodes(node_id)
            logger.debug(f"[{label}] memory bound to NUMA node {node_id}")
    except Exception as e:
        logger.warning(f"[{label}] could not set NUMA memory binding: {e}")


def min_stack_size():
    """The platform's minimum thread stack size (PTHREAD_STACK_MIN)."""
    if "SC_THREAD_STACK_MIN" in getattr(os, "sysconf_names", {}):
        try:
            value = os.sysconf("SC_THREAD_STACK_MIN")
        except (OSError, ValueError):
            value = -1
        if value > 0:
            return value
    return FALLBACK_STACK_MIN


def worker_stack_size(multiplier=8):
    """
    Stack size for a worker's enumeration thread: `multiplier` times the
    platform minimum, rounded up to a whole page and never below the
    interpreter's floor.
    """
    if multiplier < 1:
        raise ValueError(f"Stack multiplier must be >= 1, got {multiplier}.")
    size = max(min_stack_size() * multiplier, THREAD_STACK_FLOOR)
    return -(-size // PAGE_SIZE) * PAGE_SIZE


def investigate_numa_domains():
    """
    Print the execution units available to this process and, when py-libnuma
    and libnuma.so are both available, the NUMA layout behind them.

    If missing, print instructions on how to install them.
    """
    print("=== Investigating Execution Units ===")
    units = available_units()
    print(f"{len(units)} execution unit(s) available: {units}")

    if not has_pynuma:
        print("'py-libnuma' Python package not found; NUMA details unavailable.")
        print("Install it using something like:")
        print("   pip install py-libnuma")
        print("=====================================\n")
        return

    if not check_libnuma_so():
        print("System dependency `libnuma.so` is missing.")
        print("Install it using:")
        print("   - Ubuntu/Debian: `sudo apt-get install -y numactl libnuma-dev`")
        print("   - RHEL/CentOS:   `sudo yum install -y numactl numactl-devel`")
        print("=====================================\n")
        return

    try:
        max_node = info.get_max_node()
        node_count = max_node + 1
        print(f"System has {node_count} NUMA node(s).")

        for node_id in range(node_count):
            dist = info.numa_distance(0, node_id)
            cpus = info.node_to_cpus(node_id)
            print(f" - Node {node_id}, distance_from_node0={dist}, CPUs={cpus}")

    except AttributeError as e:
        print("The installed `py-libnuma` does not provide a needed function:")
        print(f"   {e}")
    except Exception as e:
        print(f"Unexpected error while investigating NUMA: {e}")

    print("=====================================\n")
