"""
Machine-readable run summary

The scheduler reads flat key=value lines from the file named by
RUN_OUTPUT_PATH (GITHUB_OUTPUT on GitHub Actions). The same summary is
logged as one JSON line for log collectors.
"""
import json
import logging
import os
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value).replace('\n', ' ')


class RunOutput:

    def __init__(self, path: Optional[str] = None):
        self.path = path

    @classmethod
    def from_env(cls) -> 'RunOutput':
        """Sink from the raw environment, for when settings cannot be loaded."""
        return cls(os.getenv('RUN_OUTPUT_PATH') or os.getenv('GITHUB_OUTPUT') or None)

    def write(self, summary: Dict[str, Any]) -> None:
        logger.info(f"📊 Run summary: {json.dumps(summary, default=str)}")

        if not self.path:
            return

        lines = [f"{key}={_format_value(value)}\n" for key, value in summary.items()]
        with open(self.path, 'a', encoding='utf-8') as f:
            f.writelines(lines)

    def write_error(self, error: str) -> None:
        self.write({'error': error, 'processed': 0})
