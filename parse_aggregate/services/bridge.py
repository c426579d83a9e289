from __future__ import annotations
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from ..config import Settings
from ..errors import ConfigurationError, DirectExecutionUnavailable
from ..utils.logger import setup_logger
from .executors import DirectExecutor, RemoteExecutor

logger = setup_logger(__name__)


class ExecutionMode(str, Enum):
    REMOTE = "remote"
    # direct when available, remote otherwise
    AUTO = "auto"
    DIRECT_ONLY = "direct_only"


class ExecutionBridge:
    """
    Chooses the executor for a compiled pipeline.

    The direct executor is only used when it is passed in and reports itself
    available; nothing here reads global state.
    """

    def __init__(self, remote: Optional[RemoteExecutor] = None, direct: Optional[DirectExecutor] = None):
        self.remote = remote
        self.direct = direct

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExecutionBridge":
        direct = DirectExecutor.from_settings(settings) if settings.MONGO_DIRECT_ENABLED else None
        return cls(remote=RemoteExecutor.from_settings(settings), direct=direct)

    @property
    def direct_available(self) -> bool:
        return self.direct is not None and self.direct.is_available

    def execute(
        self,
        class_name: str,
        pipeline: List[Mapping],
        mode: ExecutionMode = ExecutionMode.REMOTE,
    ) -> List[Dict[str, Any]]:
        mode = ExecutionMode(mode)

        if mode is ExecutionMode.DIRECT_ONLY:
            if self.direct is None:
                raise DirectExecutionUnavailable("Direct MongoDB execution requested but no direct executor is configured")
            self.direct.ensure_available()
            logger.info(f"Executing {class_name} pipeline directly on MongoDB")
            return self.direct.aggregate(class_name, pipeline)

        if mode is ExecutionMode.AUTO:
            if self.direct_available:
                logger.info(f"Executing {class_name} pipeline directly on MongoDB")
                return self.direct.aggregate(class_name, pipeline)
            logger.warning(f"Direct MongoDB execution unavailable; falling back to the REST API for {class_name}")

        if self.remote is None:
            raise ConfigurationError("No remote executor configured")
        logger.info(f"Executing {class_name} pipeline through the REST API")
        return self.remote.aggregate(class_name, pipeline)

    def close(self) -> None:
        if self.remote is not None:
            self.remote.close()
        if self.direct is not None:
            self.direct.close()
