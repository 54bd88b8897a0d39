"""Runtime paths shared by the app factory, the store and the harness."""

from __future__ import annotations

import os


class AppContext:
    """Where MeetMate keeps its data, config and logs.

    Meeting documents and invitations live under ``data_dir``; logs stay in
    the working directory so that pointing the app at another data dir does
    not scatter log files.
    """

    def __init__(self, *, cwd: str, data_dir: str, config_path: str) -> None:
        self.cwd = cwd
        self.data_dir = data_dir
        self.config_path = config_path

    @property
    def meetings_dir(self) -> str:
        return os.path.join(self.data_dir, "meetings")

    @property
    def invitations_path(self) -> str:
        return os.path.join(self.data_dir, "meeting_invitations.json")

    @property
    def logs_dir(self) -> str:
        return os.path.join(self.cwd, "logs")

    def ensure_dirs(self) -> None:
        for path in (self.data_dir, self.meetings_dir, self.logs_dir):
            os.makedirs(path, exist_ok=True)
