"""Request/response front end for the blocking analysis engine."""

import concurrent.futures
import logging
import threading
from typing import Any

from blockplan.config import EngineConfig
from blockplan.filters import IssueFilter
from blockplan.model import BlockingModel, build_blocking_model
from blockplan.payload import GraphPayload, parse_payload

logger = logging.getLogger(__name__)


class AnalysisService:
    """Runs analyses off the caller's thread and keeps the newest result.

    Every request gets a sequence number. A finished result only replaces the
    current one if it belongs to a later request, so a slow, stale analysis
    can never overwrite a fresher model.
    """

    def __init__(self, config: EngineConfig | None = None, max_workers: int = 2):
        self.config = config or EngineConfig()
        self._executor = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers)
        self._lock = threading.Lock()
        self._next_seq = 0
        self._latest_seq = -1
        self._latest: BlockingModel | None = None

    def __enter__(self) -> "AnalysisService":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def request_analysis(
        self, payload: GraphPayload | Any, filters: IssueFilter | None = None
    ) -> "concurrent.futures.Future[BlockingModel]":
        """Submit a payload (parsed or raw) and return a future for its model.

        Payload, config and invariant errors are raised from `future.result()`.
        """
        with self._lock:
            seq = self._next_seq
            self._next_seq += 1
        return self._executor.submit(self._run, seq, payload, filters)

    def analyze(self, payload: GraphPayload | Any, filters: IssueFilter | None = None) -> BlockingModel:
        """Blocking convenience wrapper around request_analysis."""
        return self.request_analysis(payload, filters).result()

    def latest(self) -> BlockingModel | None:
        """Model of the newest request that has completed successfully."""
        with self._lock:
            return self._latest

    def _run(self, seq: int, payload: GraphPayload | Any, filters: IssueFilter | None) -> BlockingModel:
        if not isinstance(payload, GraphPayload):
            payload = parse_payload(payload, self.config)
        model = build_blocking_model(payload, filters)

        with self._lock:
            if seq > self._latest_seq:
                self._latest_seq = seq
                self._latest = model
            else:
                logger.debug("Discarding stale analysis #%d (have #%d)", seq, self._latest_seq)
        return model
