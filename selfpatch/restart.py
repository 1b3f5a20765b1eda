"""Restart hook run after a self-update has been committed."""

import logging
import os
import sys

logger = logging.getLogger(__name__)


def reexec_current_process():
    """Replace the current process with a fresh interpreter running the same argv.

    Does not return on success.
    """
    argv = [sys.executable] + sys.argv
    logger.info("[Restart] Re-executing: %s", " ".join(argv))
    for handler in logging.getLogger("selfpatch").handlers:
        handler.flush()
    sys.stdout.flush()
    sys.stderr.flush()
    os.execv(sys.executable, argv)
