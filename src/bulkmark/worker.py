"""Detached background process for the organize call.

``DetachedLauncher`` spawns ``python -m bulkmark.worker`` in its own
session and writes the START_ORGANIZE message to its stdin as JSON, so
the AI call outlives the CLI invocation that started it.
"""

import json
import logging
import subprocess
import sys
from pathlib import Path
from typing import Any, Optional

import click

from .background import OrganizeWorker, heartbeat_ping, record_organize_error
from .config import Config, load_config
from .exceptions import ConfigError
from .messaging import GET_ORGANIZE_STATUS, ORGANIZE_ERROR, START_ORGANIZE, Channel, Message
from .storage import CredentialStore, JsonFileStore, SessionStore

logger = logging.getLogger(__name__)

WORKER_LOG_FILE = "worker.log"


class DetachedLauncher:
    """Background-bus listener that hands START_ORGANIZE to a child process."""

    def __init__(self, channel: Channel, sessions: SessionStore, data_dir: Path,
                 model: str = "", keepalive_interval: Optional[float] = None):
        self._channel = channel
        self._sessions = sessions
        self._data_dir = Path(data_dir)
        self._model = model
        self._keepalive_interval = keepalive_interval
        self.process: Optional[subprocess.Popen] = None

    def attach(self) -> None:
        self._channel.to_background.add_listener(self._on_message)

    def detach(self) -> None:
        self._channel.to_background.remove_listener(self._on_message)

    def command(self) -> list[str]:
        cmd = [sys.executable, "-m", "bulkmark.worker", "--data-dir", str(self._data_dir)]
        if self._model:
            cmd += ["--model", self._model]
        if self._keepalive_interval is not None:
            cmd += ["--keepalive", str(self._keepalive_interval)]
        return cmd

    def _on_message(self, message: Message) -> Optional[Any]:
        if message.type == GET_ORGANIZE_STATUS:
            session = self._sessions.load()
            return session.to_dict() if session else None
        if message.type != START_ORGANIZE:
            return None

        self.process = None
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            self.process = subprocess.Popen(
                self.command(),
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
            self.process.stdin.write(json.dumps(message.to_dict()).encode("utf-8"))
            self.process.stdin.close()
        except OSError as e:
            error_message = f"Could not start background worker: {e}"
            logger.error("Could not start background worker: %s", e)
            if self.process is not None:
                self.process.kill()
            if record_organize_error(self._sessions, error_message):
                self._channel.to_foreground.send(
                    Message(ORGANIZE_ERROR, {"errorMessage": error_message})
                )
            return None
        logger.info("Started background worker (pid %s)", self.process.pid)
        return None


def _abort(data_dir: Path, error_message: str) -> None:
    """Record a failed handoff on the session and exit."""
    logger.error("%s", error_message)
    record_organize_error(SessionStore(JsonFileStore(data_dir)), error_message)
    sys.exit(2)


@click.command()
@click.option("--data-dir", type=click.Path(), default=None)
@click.option("--model", type=str, default=None)
@click.option("--keepalive", type=float, default=None)
def main(data_dir, model, keepalive):
    """Entry point of the detached worker process."""
    try:
        config = load_config(
            data_dir=data_dir,
            model=model,
            keepalive_interval=keepalive,
            validate=False,
        )
    except ConfigError as e:
        _abort(Path(data_dir) if data_dir else Config().data_dir, f"Configuration error: {e}")
    config.data_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=str(config.data_dir / WORKER_LOG_FILE),
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        message = Message.from_dict(json.loads(sys.stdin.read()))
    except ValueError as e:
        _abort(config.data_dir, f"Invalid worker message: {e}")

    kv = JsonFileStore(config.data_dir)
    worker = OrganizeWorker(
        SessionStore(kv),
        CredentialStore(kv, config.env_api_keys),
        channel=Channel(),
        model=config.model or None,
        keepalive_interval=config.keepalive_interval,
        ping=heartbeat_ping(kv),
    )
    worker.handle(message)


if __name__ == "__main__":
    main()
