# ==========================================================
# 🐳  docker_utils.py — Container runtime helpers
# ==========================================================
# Thin wrappers around the docker CLI:
#   - docker exec [-u user] <container> <cmd...>
#   - docker run --rm with volume mounts (ephemeral helper)
#   - streaming a gzip'd SQL dump into psql in a container
#
# Each helper returns the exit status; callers decide whether
# a non-zero status is fatal or best-effort.
# ==========================================================

import gzip
import shutil
import subprocess
import zlib
from typing import Optional, Sequence

from nextcloud_restore.s3_utils import log

# bad header / CRC (OSError), truncated stream (EOFError), corrupt deflate data
DUMP_ERRORS = (OSError, EOFError, zlib.error)


def run(cmd: Sequence[str]) -> int:
    """Run a command, inheriting stdout/stderr. Returns its exit status."""
    try:
        return subprocess.run(list(cmd), check=False).returncode
    except OSError as e:
        # docker binary missing or not executable
        log(f"❌ Could not run {cmd[0]}: {e}")
        return 127


def docker_exec(container: str, command: Sequence[str], user: Optional[str] = None) -> int:
    cmd = ["docker", "exec"]
    if user:
        cmd += ["-u", user]
    cmd += [container, *command]
    return run(cmd)


def docker_run(image: str, mounts: Sequence[str], command: Sequence[str]) -> int:
    """Run a throw-away container (--rm) with `-v` mounts like 'vol:/dest'."""
    cmd = ["docker", "run", "--rm"]
    for mount in mounts:
        cmd += ["-v", mount]
    cmd += [image, *command]
    return run(cmd)


def stream_sql_dump(dump_path, container: str, user: str, database: str) -> int:
    """
    Decompress a .sql.gz dump and pipe it into psql inside `container`.

    Returns:
        int: psql's exit status.

    Raises:
        One of DUMP_ERRORS if the dump cannot be read or decompressed,
        or docker cannot be started.
    """
    cmd = ["docker", "exec", "-i", container, "psql", "-U", user, "-d", database]
    with gzip.open(dump_path, "rb") as src:
        proc = subprocess.Popen(cmd, stdin=subprocess.PIPE)
        try:
            shutil.copyfileobj(src, proc.stdin)
        except BrokenPipeError:
            # psql went away early; its exit status tells the story
            pass
        except BaseException:
            proc.kill()
            proc.wait()
            raise
        finally:
            try:
                proc.stdin.close()
            except BrokenPipeError:
                pass
        return proc.wait()
