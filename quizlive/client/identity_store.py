"""
MODULE OVERVIEW:
Durable storage for "who am I in which session".

WHAT IS HAPPENING HERE:
A browser client would keep this in localStorage; a terminal client keeps it in a
small JSON file. It survives process restarts so `quizlive play` can rejoin a match
after a crash or a closed laptop lid. The file is the only state shared across
client instances; it is read once at startup and written on every join attempt.
"""
import os
import tempfile
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import ValidationError

from quizlive.shared.models import SessionIdentity

class SessionIdentityStore:
    def __init__(self, path: Path):
        self.path = Path(path)

    def remember(self, identity: SessionIdentity) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Write-then-replace so a crash mid-write never leaves a half file behind
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".session-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(identity.model_dump_json())
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"identity=remembered session={identity.session_code} name={identity.participant_name}")

    def recall(self) -> Optional[SessionIdentity]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"identity=unreadable path={self.path} reason='{e}'")
            return None

        try:
            return SessionIdentity.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"identity=corrupt path={self.path} reason=purged errors={e.error_count()}")
            self.forget()
            return None

    def forget(self) -> None:
        try:
            self.path.unlink()
            logger.debug(f"identity=forgotten path={self.path}")
        except FileNotFoundError:
            pass
