"""
Concurrent fan-out of independent remote calls.

Used by operations that request several variants at once (background
styles, profile picture designs). Variants run on a thread pool and are
joined; a failed variant is dropped, and only the failure of every variant
is fatal.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import concurrent.futures
import logging

from RS_Libs.errors import CompositeFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VariantResult:
    """A successful variant: its label and the produced value."""
    description: str
    value: Any


def run_variants(
    tasks: Sequence[Tuple[str, Callable[[], Any]]],
    max_workers: Optional[int] = None,
    failure_message: str = "All variants failed.",
) -> List[VariantResult]:
    """
    Run labelled tasks concurrently and keep the ones that succeed.

    Args:
        tasks: (description, zero-argument callable) pairs
        max_workers: Maximum number of threads (default: one per task)
        failure_message: Message of the CompositeFailure raised when none succeed

    Returns:
        Successful results in the order the tasks were given

    Raises:
        CompositeFailure: If every task raised
    """
    if not tasks:
        raise ValueError("run_variants requires at least one task")

    results: Dict[int, VariantResult] = {}
    failures: List[Tuple[str, BaseException]] = []

    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers or len(tasks)) as executor:
        futures: Dict[concurrent.futures.Future, Tuple[int, str]] = {}
        for position, (description, task) in enumerate(tasks):
            future = executor.submit(task)
            futures[future] = (position, description)

        for future in concurrent.futures.as_completed(futures):
            position, description = futures[future]
            try:
                results[position] = VariantResult(description, future.result())
            except Exception as e:
                logger.warning(f"Variant '{description}' failed and was dropped: {e}")
                failures.append((description, e))

    if not results:
        raise CompositeFailure(failure_message, failures=failures)

    return [results[position] for position in sorted(results)]
