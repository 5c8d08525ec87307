"""执行引擎基类。

实时循环与回测都实现 `run() -> EngineResult`，由 main.py 统一调度。
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class EngineResult:
    """引擎运行结果（统一出口）。"""

    summary: dict[str, Any]
    artifacts: dict[str, Any] | None = None


class BaseEngine(ABC):
    """引擎抽象基类。"""

    logger: logging.Logger

    @abstractmethod
    def run(self) -> EngineResult:
        raise NotImplementedError

    def _emit(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        """尽力而为地调用外部回调；回调异常只记日志，不影响主循环。"""
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as exc:
            self.logger.warning("callback %s failed: %s", getattr(callback, "__name__", callback), exc)
