from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from metasweep.errors import PolicyError

KEEP = "keep"
DROP = "drop"
DEFAULT = "default"

_BASELINE_KEEP = ("EXIF.Orientation", "Image.ColorProfile", "Image.DPI")


@dataclass(frozen=True, slots=True)
class Policy:
    """Named keep/drop glob rules over canonical field names."""

    name: str
    keep: tuple[str, ...] = ()
    drop: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Decision:
    """Outcome of evaluating a policy against one canonical name."""

    keep: bool
    reason: str
    pattern: str | None = None

    @property
    def label(self) -> str:
        return "KEEP" if self.keep else "DROP"


class PolicyDocument(BaseModel):
    """On-disk JSON policy: ``{"name": ..., "keep": [...], "drop": [...]}``."""

    name: str = "custom"
    keep: list[str] = Field(default_factory=list)
    drop: list[str] = Field(default_factory=list)


BUILTIN_POLICIES: dict[str, Policy] = {
    "aggressive": Policy(name="aggressive", keep=_BASELINE_KEEP, drop=("*",)),
    "safe": Policy(
        name="safe",
        keep=_BASELINE_KEEP,
        drop=(
            "EXIF.GPS*",
            "EXIF.SerialNumber",
            "XMP.CreatorTool",
            "XMP.History*",
            "PDF.Author",
            "PDF.Creator",
            "PDF.Producer",
            "PDF.CreationDate",
            "PDF.ModDate",
            "ID3.TPE1",
            "ID3.TALB",
            "ID3.TDRC",
            "ZIP.Comment",
        ),
    ),
}


def glob_match(pattern: str, text: str) -> bool:
    """Case-sensitive glob supporting ``*`` (any run) and ``?`` (one char)."""

    p = t = 0
    star = -1
    mark = 0
    while t < len(text):
        if p < len(pattern) and pattern[p] in (text[t], "?"):
            p += 1
            t += 1
        elif p < len(pattern) and pattern[p] == "*":
            star = p
            p += 1
            mark = t
        elif star != -1:
            p = star + 1
            mark += 1
            t = mark
        else:
            return False
    while p < len(pattern) and pattern[p] == "*":
        p += 1
    return p == len(pattern)


def decide(policy: Policy, canonical: str) -> Decision:
    """Keep patterns win over drop patterns; unmatched names are dropped."""

    for pattern in policy.keep:
        if glob_match(pattern, canonical):
            return Decision(keep=True, reason=KEEP, pattern=pattern)
    for pattern in policy.drop:
        if glob_match(pattern, canonical):
            return Decision(keep=False, reason=DROP, pattern=pattern)
    return Decision(keep=False, reason=DEFAULT)


def policy_keep(policy: Policy, canonical: str) -> bool:
    return decide(policy, canonical).keep


def get_builtin(name: str) -> Policy:
    try:
        return BUILTIN_POLICIES[name]
    except KeyError:
        known = ", ".join(sorted(BUILTIN_POLICIES))
        raise PolicyError(f"unknown policy {name!r} (known: {known})") from None


def read_policy_file(path: Path) -> Policy:
    """Load a JSON policy document."""

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as error:
        raise PolicyError(f"cannot read policy file {path}: {error}") from error
    try:
        document = PolicyDocument.model_validate_json(raw)
    except ValidationError as error:
        raise PolicyError(f"invalid policy file {path}: {error}") from error
    return Policy(name=document.name, keep=tuple(document.keep), drop=tuple(document.drop))


def load_policy(
    base: str = "aggressive",
    policy_file: Path | None = None,
    keep: list[str] | None = None,
    drop: list[str] | None = None,
) -> Policy:
    """Build the run policy: a preset or policy file, overlaid with extra patterns."""

    policy = read_policy_file(policy_file) if policy_file is not None else get_builtin(base)
    return Policy(
        name=policy.name,
        keep=policy.keep + tuple(keep or ()),
        drop=policy.drop + tuple(drop or ()),
    )


__all__ = [
    "BUILTIN_POLICIES",
    "DEFAULT",
    "DROP",
    "Decision",
    "KEEP",
    "Policy",
    "PolicyDocument",
    "decide",
    "get_builtin",
    "glob_match",
    "load_policy",
    "policy_keep",
    "read_policy_file",
]
