"""
===============================================================================
TARJETA CRC — application/background.py
===============================================================================

Componente:
  BackgroundRunner (best-effort, fire-and-forget)

Responsabilidades:
  - Ejecutar trabajo desacoplado del request (telemetría de auditoría,
    despacho de alertas) en un ThreadPoolExecutor propio.
  - Contener errores: una tarea que falla se loguea y NUNCA se propaga al
    caller que la encoló.
  - Propagar el contexto de request (request_id, actor) al hilo de trabajo.
  - drain(timeout): esperar lo pendiente (shutdown y tests).

Colaboradores:
  - concurrent.futures
  - contextvars (security_core.context)
  - crosscutting.logger
===============================================================================
"""

from __future__ import annotations

import contextvars
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable

from ..crosscutting.logger import logger


class BackgroundRunner:
    def __init__(self, max_workers: int = 4, *, name: str = "security-bg") -> None:
        if max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=name
        )
        self._pending: set[Future] = set()
        self._lock = threading.Lock()

    def submit(
        self,
        fn: Callable[..., Any],
        *args: Any,
        task_name: str | None = None,
        **kwargs: Any,
    ) -> Future:
        name = task_name or getattr(fn, "__name__", "task")
        ctx = contextvars.copy_context()

        def contained() -> Any:
            try:
                return fn(*args, **kwargs)
            except Exception as exc:
                logger.exception(
                    "Background task failed",
                    extra={"task": name, "error_type": type(exc).__name__},
                )
                return None

        future = self._executor.submit(ctx.run, contained)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def drain(self, timeout: float | None = None) -> bool:
        """True si todo lo pendiente terminó dentro del timeout."""
        with self._lock:
            pending = set(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        if not_done:
            logger.warning(
                "Background tasks still running after drain timeout",
                extra={"pending": len(not_done), "timeout_s": timeout},
            )
        return not not_done

    def shutdown(self, wait_for_pending: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_pending, cancel_futures=not wait_for_pending)
