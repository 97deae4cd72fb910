"""
Remote Command Builders

Architectural Intent:
- Every shell command the pipeline sends to a host is built here
- All paths and user-supplied values quoted via shlex.quote() to prevent
  shell injection
- Restore is a full overwrite: extract to a fresh staging directory, then
  swap it in, so repeated restores of one archive yield identical content
"""

import posixpath
import shlex


def _split(app_dir: str) -> tuple[str, str]:
    parent, base = posixpath.split(app_dir.rstrip("/"))
    return parent or "/", base


def ping() -> str:
    return "true"


def archive(app_dir: str, dest: str) -> str:
    """Archive app_dir with its basename as the single top-level entry."""
    parent, base = _split(app_dir)
    return (
        f"mkdir -p {shlex.quote(app_dir)} && "
        f"tar -czf {shlex.quote(dest)} -C {shlex.quote(parent)} {shlex.quote(base)}"
    )


def swap_in(archive_path: str, app_dir: str) -> str:
    """Replace app_dir wholesale with the contents of a backup archive."""
    _, base = _split(app_dir)
    target = shlex.quote(app_dir)
    staging = shlex.quote(app_dir + ".restore")
    old = shlex.quote(app_dir + ".old")
    extracted = shlex.quote(posixpath.join(app_dir + ".restore", base))
    return " && ".join(
        [
            f"rm -rf {staging}",
            f"mkdir -p {staging}",
            f"tar -xzf {shlex.quote(archive_path)} -C {staging}",
            f"test -d {extracted}",
            f"rm -rf {old}",
            f"{{ [ ! -e {target} ] || mv {target} {old}; }}",
            f"mv {extracted} {target}",
            f"rm -rf {old} {staging}",
        ]
    )


def extract_over(archive_path: str, app_dir: str) -> str:
    """Unpack a release artifact on top of app_dir (files at archive root)."""
    return (
        f"mkdir -p {shlex.quote(app_dir)} && "
        f"tar -xzf {shlex.quote(archive_path)} -C {shlex.quote(app_dir)}"
    )


def in_app_dir(app_dir: str, command: str) -> str:
    return f"cd {shlex.quote(app_dir)} && {command}"


def wait_for_port(port: int, timeout: float) -> str:
    probe = f"until (: </dev/tcp/127.0.0.1/{int(port)}) 2>/dev/null; do sleep 1; done"
    return f"timeout {max(1, int(timeout))} bash -c {shlex.quote(probe)}"


def remove(path: str) -> str:
    return f"rm -f {shlex.quote(path)}"


def is_active(service_name: str) -> str:
    return f"systemctl is-active {shlex.quote(service_name)}"
