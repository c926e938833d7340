"""Application log pipeline: ingest, dedup, persistence and request helpers."""

from __future__ import annotations

from ticketzetu.logs.caller import CallerInspector
from ticketzetu.logs.handler import LogHandler, client_ip
from ticketzetu.logs.pipeline import LogPipeline

__all__ = ["CallerInspector", "LogHandler", "LogPipeline", "client_ip"]
