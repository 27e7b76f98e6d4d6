"""``.env`` loading for the entry points (``create_app`` and the CLI).

Nothing here runs at import time.
"""

from __future__ import annotations

import os

from dotenv import find_dotenv, load_dotenv

ENV_FILE_VARIABLE = "MCPEER_ENV_FILE"


def load_dotenv_if_present(path: str | None = None) -> bool:
    """Load variables from ``path``, ``$MCPEER_ENV_FILE`` or the nearest ``.env``.

    Variables already set in the process environment win. Returns whether a
    file was found.
    """

    dotenv_path = path or os.getenv(ENV_FILE_VARIABLE) or find_dotenv(filename=".env", usecwd=True)
    if not dotenv_path or not os.path.isfile(dotenv_path):
        return False
    load_dotenv(dotenv_path=dotenv_path, override=False)
    return True
