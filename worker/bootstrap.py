"""
Pipeline Worker — Bootstrap Resolver

Reads sdc.properties from the runtime config directory and resolves
which pipeline revision this worker must run.

The file is a UTF-8 Java-style properties store. Missing file or any
missing required key is fatal: there is no retry and no default.

Usage:
    from worker.bootstrap import load_identity

    bootstrap = load_identity(runtime_info.config_dir, runtime_info)
    bootstrap.pipeline.owner, bootstrap.pipeline.name, bootstrap.pipeline.revision
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

from worker.errors import ConfigFieldMissingError, ConfigMissingError, ConfigUnreadableError
from worker.types import BootstrapConfig, PipelineIdentity

if TYPE_CHECKING:
    from worker.runtime_info import RuntimeInfo

logger = logging.getLogger("pipeline_worker.bootstrap")


BOOTSTRAP_FILE = "sdc.properties"

SDC_ID = "sdc.id"
PIPELINE_NAME = "cluster.pipeline.name"
PIPELINE_USER = "cluster.pipeline.user"
PIPELINE_REV = "cluster.pipeline.rev"

REQUIRED_KEYS = (SDC_ID, PIPELINE_NAME, PIPELINE_USER, PIPELINE_REV)


# ═══════════════════════════════════════════════════════════════════
# Properties Parsing
# ═══════════════════════════════════════════════════════════════════

_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}
_HEX = set("0123456789abcdefABCDEF")
_LINE_BREAK = re.compile(r"\r\n|\r|\n")
_BLANK = " \t\f"


def _logical_lines(text: str):
    """Join backslash-continued lines; drop blanks and comments."""
    pending = None
    for raw in _LINE_BREAK.split(text):
        line = raw.lstrip(_BLANK)
        if pending is None and (not line or line[0] in "#!"):
            continue
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            pending = (pending or "") + line[:-1]
            continue
        yield (pending or "") + line
        pending = None
    if pending:
        yield pending


def _unescape(value: str) -> str:
    out = []
    i = 0
    while i < len(value):
        ch = value[i]
        if ch != "\\" or i + 1 == len(value):
            out.append(ch)
            i += 1
            continue
        nxt = value[i + 1]
        digits = value[i + 2:i + 6]
        if nxt == "u" and len(digits) == 4 and set(digits) <= _HEX:
            out.append(chr(int(digits, 16)))
            i += 6
            continue
        out.append(_ESCAPES.get(nxt, nxt))
        i += 2
    return "".join(out)


def _split_entry(line: str) -> tuple[str, str]:
    """Split at the first unescaped '=', ':' or whitespace."""
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == "\\":
            i += 2
            continue
        if ch in "=:" or ch in _BLANK:
            break
        i += 1
    rest = line[i:].lstrip(_BLANK)
    if rest[:1] in ("=", ":"):
        rest = rest[1:].lstrip(_BLANK)
    return _unescape(line[:i]), _unescape(rest)


def parse_properties(text: str) -> dict[str, str]:
    """Parse Java-style properties text. Later keys override earlier ones."""
    properties: dict[str, str] = {}
    for line in _logical_lines(text):
        key, value = _split_entry(line)
        if key:
            properties[key] = value
    return properties


def read_properties(path: str | Path) -> dict[str, str]:
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except UnicodeDecodeError as e:
        raise ConfigUnreadableError(str(path), str(e)) from e
    return parse_properties(text)


# ═══════════════════════════════════════════════════════════════════
# Bootstrap Identity
# ═══════════════════════════════════════════════════════════════════

def load_identity(
    config_dir: str | Path,
    runtime_info: RuntimeInfo | None = None,
) -> BootstrapConfig:
    """
    Load and validate the bootstrap identity.

    Raises:
        ConfigMissingError: <config_dir>/sdc.properties does not exist
        ConfigUnreadableError: the file is not valid UTF-8
        ConfigFieldMissingError: a required key is absent or blank
    """
    path = Path(config_dir) / BOOTSTRAP_FILE
    if not path.is_file():
        raise ConfigMissingError(str(path.absolute()))

    properties = read_properties(path)
    for key in REQUIRED_KEYS:
        if not properties.get(key, "").strip():
            raise ConfigFieldMissingError(key, str(path))

    process_id = properties[SDC_ID].strip()
    if runtime_info is not None:
        runtime_info.set_master_id(process_id)

    pipeline = PipelineIdentity(
        owner=properties[PIPELINE_USER].strip(),
        name=properties[PIPELINE_NAME].strip(),
        revision=properties[PIPELINE_REV].strip(),
    )
    logger.info("Bootstrap identity: pipeline '%s' rev '%s' owned by '%s'",
                pipeline.name, pipeline.revision, pipeline.owner)
    return BootstrapConfig(process_id=process_id, pipeline=pipeline, source=path)
