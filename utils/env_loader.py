import os
from pathlib import Path
from typing import Optional


def load_environments(env_path: Optional[str] = None) -> None:
    """Populate ``os.environ`` from a dotenv file without overriding set keys.

    The file defaults to ``GATEWAY_ENV_FILE`` or ``.env``.
    """
    env_file = Path(env_path or os.getenv("GATEWAY_ENV_FILE", ".env"))
    if not env_file.exists():
        return

    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if value[:1] in {"'", '"'}:
            value = value.strip(value[0])
        elif " #" in value:
            value = value.split(" #", 1)[0].rstrip()
        if key and key not in os.environ:
            os.environ[key] = value
