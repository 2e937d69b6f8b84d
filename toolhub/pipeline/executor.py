"""
Operation executor.

Runs a handler once, on a thread of its own, under a wall-clock timeout.
There is no shared worker pool: every request gets its thread as soon as
it reaches execution, so the timeout measures the handler alone and one
request never waits behind another.

Handler exceptions become ExecutionError; InputRejected and other
ValidationErrors raised deliberately by a handler pass through unchanged.
"""

import asyncio
import threading
import time
from pathlib import Path
from typing import Any, List, Optional

from toolhub.core.errors import ExecutionError, ExecutionTimeout, ValidationError
from toolhub.core.logging_config import get_logger
from toolhub.pipeline.models import OperationKind, OperationResult, UploadedAsset
from toolhub.pipeline.registry import OperationSpec, ToolParams

logger = get_logger(__name__)


def _settle(future: asyncio.Future, value: Any, error: Optional[Exception]) -> None:
    # The awaiting side may already have timed out and cancelled the future.
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(value)


class OperationExecutor:
    """Per-call thread handler runner with a per-call timeout."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        self._active = 0

    @property
    def active(self) -> int:
        return self._active

    async def execute(
        self,
        spec: OperationSpec,
        assets: List[UploadedAsset],
        params: ToolParams,
        work_dir: Optional[Path],
    ) -> OperationResult:
        """Invoke ``spec.handler`` exactly once.

        Raises:
            ExecutionTimeout: the handler ran past ``timeout_seconds``. The
                thread cannot be interrupted; whatever it still writes
                lands in ``work_dir``, which the caller deletes.
            ExecutionError: the handler raised, or returned nothing usable.
        """
        start = time.perf_counter()
        self._active += 1
        try:
            result = await asyncio.wait_for(
                self._run_in_thread(spec, assets, params, work_dir), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            logger.error(f"{spec.id} timed out after {self.timeout_seconds}s")
            raise ExecutionTimeout(f"{spec.id} timed out", cause=e) from e
        except ValidationError as e:
            logger.info(f"{spec.id} rejected its input: {e.message}")
            raise
        except Exception as e:
            logger.error(f"{spec.id} failed: {e}", exc_info=True)
            raise ExecutionError(f"{spec.id} failed: {e}", cause=e) from e
        finally:
            self._active -= 1

        self._check_result(spec, result)
        elapsed = (time.perf_counter() - start) * 1000
        logger.info(f"{spec.id} finished in {elapsed:.0f}ms with {len(result.outputs)} output(s)")
        return result

    async def _run_in_thread(self, spec: OperationSpec, assets, params, work_dir):
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def target() -> None:
            value, error = None, None
            try:
                value = spec.handler(assets, params, work_dir)
            except Exception as exc:
                error = exc
            try:
                loop.call_soon_threadsafe(_settle, future, value, error)
            except RuntimeError:
                # Loop already closed: the request ended on its timeout.
                logger.debug(f"{spec.id} finished after its request was gone")

        threading.Thread(target=target, name=f"toolhub-op-{spec.id}", daemon=True).start()
        return await future

    def _check_result(self, spec: OperationSpec, result) -> None:
        if not isinstance(result, OperationResult):
            raise ExecutionError(f"{spec.id} returned {type(result).__name__}, expected OperationResult")
        if spec.kind is OperationKind.DELIVERABLE:
            if not result.outputs:
                raise ExecutionError(f"{spec.id} produced no output")
            missing = [o.suggested_name for o in result.outputs if not o.local_path.is_file()]
            if missing:
                raise ExecutionError(f"{spec.id} reported outputs that do not exist: {missing}")
