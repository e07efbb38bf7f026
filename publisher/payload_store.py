# publisher/payload_store.py
import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path

from publisher.payload_schema import INTEGRATION_NAME, PROTOCOL_VERSION, PayloadDocument
from utils.version import get_version, get_build

logger = logging.getLogger("pgcollector.publisher")


def new_session_id(collected_at):
    # Format: pg_2025-11-23T11:33:09Z_550e8400
    timestamp_part = collected_at.strftime("%Y-%m-%dT%H:%M:%SZ")
    return f"pg_{timestamp_part}_{str(uuid.uuid4())[:8]}"


def build_payload(run, saved_at=None, session_id=None) -> PayloadDocument:
    """Render a finished ``CollectionRun`` as the published document."""
    saved_at = saved_at or datetime.now(timezone.utc)
    version = get_version()

    metadata = {
        "session_id": session_id or new_session_id(run.collected_at),
        "collector_version": version,
        "collector_build": get_build(),
        "collected_at": run.collected_at.isoformat(),
        "saved_at": saved_at.isoformat(),
        "host": run.host,
        "port": run.port,
        "server_version": str(run.version) if run.version is not None else None,
    }

    return {
        "name": INTEGRATION_NAME,
        "protocol_version": PROTOCOL_VERSION,
        "integration_version": version,
        "metadata": metadata,
        "data": [entity.to_dict() for entity in run.registry],
        "errors": list(run.errors),
    }


class PayloadStore:
    """
    Writes payloads to stdout (no output configured), to a file, or into a
    directory as ``pgcollector_YYYY-MM-DD_HH-MM-SS.json``.
    """

    def __init__(self, output=None, stream=None):
        self.output = Path(output) if output else None
        self.stream = stream

    def target_path(self, saved_at):
        if self.output is None:
            return None
        if self.output.is_dir() or not self.output.suffix:
            return self.output / saved_at.strftime("pgcollector_%Y-%m-%d_%H-%M-%S.json")
        return self.output

    def publish(self, run):
        """
        Save the run's payload. Returns ``(payload, path)``; path is None when
        the payload went to the stream.
        """
        saved_at = datetime.now(timezone.utc)
        payload = build_payload(run, saved_at=saved_at)
        text = json.dumps(payload, indent=2, default=str)

        path = self.target_path(saved_at)
        if path is None:
            stream = self.stream or sys.stdout
            stream.write(text + "\n")
            stream.flush()
            return payload, None

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        logger.info("Payload written to %s", path)
        return payload, str(path)
