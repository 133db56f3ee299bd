"""Lighthouse audit engine adapter.

Runs the Lighthouse CLI as a subprocess against the remote debugging port of
an already running BrowserHandle. Lighthouse is asked to save its gathered
artifacts next to the report so that the extractor can read the main
document's content and the DevTools network log.

Lighthouse drives the browser over a single DevTools session, so one handle
supports exactly one audit at a time. Callers never run two audits against
the same handle concurrently.
"""

from __future__ import annotations

import asyncio
import json
import logging
import tempfile
from pathlib import Path
from typing import Any

from beacon.common.exceptions import AuditEngineException
from beacon.config import WorkerConfig
from beacon.data_types import RawAuditReport
from beacon.driver.browser import BrowserHandle

logger = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 2000


class LighthouseEngine:
    """Adapter around the ``lighthouse`` command-line tool.

    Example::

        engine = LighthouseEngine(config)
        report = await engine.audit("https://example.com", handle)
        print(report.lhr["categories"]["seo"]["score"])
    """

    def __init__(self, config: WorkerConfig | None = None) -> None:
        self.config = config or WorkerConfig()

    def build_command(
        self, url: str, port: int, artifacts_dir: Path
    ) -> list[str]:
        """Build the Lighthouse command line for one audit."""
        return [
            *self.config.lighthouse_command,
            url,
            f"--port={port}",
            "--hostname=127.0.0.1",
            "--output=json",
            "--output-path=stdout",
            f"--only-categories={','.join(self.config.only_categories)}",
            f"--gather-mode={artifacts_dir}",
            f"--audit-mode={artifacts_dir}",
            "--quiet",
        ]

    async def audit(self, url: str, handle: BrowserHandle) -> RawAuditReport:
        """Audit *url* using the browser behind *handle*.

        Args:
            url: The URL to audit.
            handle: A live browser handle, used by no other audit.

        Returns:
            RawAuditReport with the Lighthouse result and saved artifacts.

        Raises:
            AuditEngineException: If Lighthouse cannot run or returns no
                usable report.
        """
        with tempfile.TemporaryDirectory(prefix="beacon-") as tmp:
            artifacts_dir = Path(tmp)
            command = self.build_command(url, handle.port, artifacts_dir)
            logger.debug(f"Running {' '.join(command)}")

            try:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise AuditEngineException(
                    f"Could not start Lighthouse ({command[0]}): {e}",
                    url=url,
                ) from e

            stdout, stderr = await process.communicate()
            stderr_text = stderr.decode("utf-8", errors="replace")
            stderr_tail = stderr_text[-STDERR_TAIL_CHARS:].strip()

            lhr = self._parse_lhr(stdout)
            runtime_error = lhr.get("runtimeError") if lhr else None
            if isinstance(runtime_error, dict):
                code = runtime_error.get("code", "UNKNOWN")
                message = runtime_error.get("message")
                raise AuditEngineException(
                    f"Lighthouse runtime error: {code}"
                    + (f": {message}" if message else ""),
                    url=url,
                    returncode=process.returncode,
                    stderr=stderr_tail,
                )

            if process.returncode != 0:
                detail = stderr_tail.splitlines()[-1] if stderr_tail else ""
                raise AuditEngineException(
                    f"Lighthouse exited with status {process.returncode}"
                    + (f": {detail}" if detail else ""),
                    url=url,
                    returncode=process.returncode,
                    stderr=stderr_tail,
                )

            if lhr is None:
                raise AuditEngineException(
                    "Lighthouse did not return valid results",
                    url=url,
                    returncode=process.returncode,
                    stderr=stderr_tail,
                )

            return RawAuditReport(
                lhr=lhr,
                artifacts=self._load_artifacts(artifacts_dir),
                devtools_log=self._load_devtools_log(artifacts_dir),
            )

    @staticmethod
    def _parse_lhr(stdout: bytes) -> dict[str, Any] | None:
        try:
            lhr = json.loads(stdout)
        except (json.JSONDecodeError, UnicodeDecodeError, RecursionError):
            return None
        if not isinstance(lhr, dict) or not isinstance(
            lhr.get("audits"), dict
        ):
            return None
        return lhr

    @staticmethod
    def _load_artifacts(artifacts_dir: Path) -> dict[str, Any]:
        path = artifacts_dir / "artifacts.json"
        if not path.exists():
            return {}
        try:
            artifacts = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read Lighthouse artifacts: {e}")
            return {}
        return artifacts if isinstance(artifacts, dict) else {}

    @staticmethod
    def _load_devtools_log(artifacts_dir: Path) -> list[dict[str, Any]]:
        # "defaultPass.devtoolslog.json" or "devtoolslog.json" by release
        for path in sorted(artifacts_dir.glob("*devtoolslog.json")):
            try:
                events = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Could not read DevTools log {path.name}: {e}")
                continue
            if isinstance(events, list):
                return events
        return []
