"""
JSON exporter — Writes the session audit log of every tenant change.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .. import __version__


def export_audit_log(
    guardian: Any,
    output_dir: Path,
    session_id: str,
    console: str,
    client_stats: dict | None = None,
) -> Path:
    """
    Write the guardian's audit record to a JSON file.

    Returns:
        Path to the created JSON file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    payload = {
        "metadata": {
            "tool": "M365 Admin Console",
            "version": __version__,
            "console": console,
            "session_id": session_id,
            "generated_utc": datetime.now(timezone.utc).isoformat(),
        },
        "client_stats": client_stats or {},
        **guardian.get_audit_record(),
    }

    filepath = output_dir / f"audit_{console}_{session_id}.json"
    with open(filepath, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str, ensure_ascii=False)

    return filepath
