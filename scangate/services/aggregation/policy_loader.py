from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional

from pydantic import ValidationError

from ...errors import PolicyConfigError
from ...schemas import GatePolicy, IgnoreEntry, IgnoreKind
from ...types import SourceTool

logger = logging.getLogger(__name__)


def load_policy(path: Path) -> GatePolicy:
    """Load a JSON gate policy document.

    Raises:
        PolicyConfigError: If the file cannot be read or fails validation.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise PolicyConfigError(f"Cannot read policy {path}: {exc}") from exc
    try:
        policy = GatePolicy.model_validate_json(text)
    except ValidationError as exc:
        raise PolicyConfigError(f"Invalid policy {path}: {exc}") from exc
    logger.info(
        "Loaded policy %s (max_severity_allowed=%s, %d ignore entries)",
        path,
        policy.max_severity_allowed.value,
        len(policy.ignore_entries),
    )
    return policy


def load_ignore_file(path: Path, *, source_tool: Optional[SourceTool] = None) -> List[IgnoreEntry]:
    """Read a Trivy style ignore file.

    One rule id per line; ``#`` starts a comment which becomes the entry's
    justification; ``exp:YYYY-MM-DD`` after the id sets the expiry.
    """
    try:
        lines = Path(path).read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        raise PolicyConfigError(f"Cannot read ignore file {path}: {exc}") from exc

    entries: List[IgnoreEntry] = []
    for number, line in enumerate(lines, start=1):
        content, _, comment = line.partition("#")
        tokens = content.split()
        if not tokens:
            continue
        expires = None
        for token in tokens[1:]:
            if not token.startswith("exp:"):
                raise PolicyConfigError(f"{path}:{number}: unexpected token {token!r}")
            try:
                expires = date.fromisoformat(token[4:])
            except ValueError as exc:
                raise PolicyConfigError(f"{path}:{number}: invalid expiry {token!r}") from exc
        entries.append(
            IgnoreEntry(
                kind=IgnoreKind.rule_id,
                pattern=tokens[0],
                justification=comment.strip() or None,
                expires=expires,
                source_tool=source_tool,
            )
        )
    return entries


def build_policy(
    policy: Optional[GatePolicy] = None,
    extra_entries: Iterable[IgnoreEntry] = (),
) -> GatePolicy:
    base = policy or GatePolicy()
    extra = list(extra_entries)
    if not extra:
        return base
    return base.model_copy(update={"ignore_entries": [*base.ignore_entries, *extra]})
