# post_scheduler/services/resolver.py
"""
Platform target resolver.

Classifies each requested ``{provider, options}`` target against a snapshot of
the providers the user currently has connected. Unreadiness is a normal
outcome recorded as an issue; nothing here raises for it, and nothing here
touches the database, so the same call is safe at creation time and every
time a pending post is resolved again.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

# provider -> option keys that must be present and non-blank
REQUIRED_OPTIONS: Dict[str, Tuple[str, ...]] = {
    "pinterest": ("boardId",),
}


class IssueReason(str, Enum):
    UNCONNECTED = "unconnected"
    MISSING_OPTION = "missing_option"


@dataclass(frozen=True)
class TargetIssue:
    provider: str
    reason: IssueReason
    detail: Optional[str] = None

    def as_dict(self) -> dict:
        return {"provider": self.provider, "reason": self.reason.value}


@dataclass(frozen=True)
class TargetClassification:
    provider: str
    ready: bool
    reason: Optional[IssueReason] = None


@dataclass
class Classification:
    results: List[TargetClassification] = field(default_factory=list)
    ready_targets: List[dict] = field(default_factory=list)
    issues: List[TargetIssue] = field(default_factory=list)

    @property
    def all_ready(self) -> bool:
        return bool(self.results) and not self.issues


def normalize_targets(targets: Iterable[Mapping]) -> List[dict]:
    """Collapse repeated providers (first one wins) and drop empty options."""
    seen = set()
    normalized = []
    for target in targets:
        provider = target["provider"]
        if provider in seen:
            continue
        seen.add(provider)
        entry = {"provider": provider}
        if target.get("options"):
            entry["options"] = dict(target["options"])
        normalized.append(entry)
    return normalized


def _missing_options(required: Mapping[str, Tuple[str, ...]], provider: str, options: Optional[Mapping]) -> List[str]:
    options = options or {}
    missing = []
    for key in required.get(provider, ()):
        value = options.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(key)
    return missing


class PlatformTargetResolver:
    def __init__(self, required_options: Optional[Mapping[str, Tuple[str, ...]]] = None):
        self.required_options = dict(REQUIRED_OPTIONS if required_options is None else required_options)

    def classify(self, targets: Iterable[Mapping], connected_providers: Iterable[str]) -> Classification:
        connected = frozenset(connected_providers)
        result = Classification()
        for target in targets:
            provider = target["provider"]
            if provider not in connected:
                issue = TargetIssue(provider, IssueReason.UNCONNECTED)
            else:
                missing = _missing_options(self.required_options, provider, target.get("options"))
                issue = TargetIssue(provider, IssueReason.MISSING_OPTION, ",".join(missing)) if missing else None

            if issue is None:
                result.results.append(TargetClassification(provider, True))
                result.ready_targets.append(dict(target))
            else:
                result.results.append(TargetClassification(provider, False, issue.reason))
                result.issues.append(issue)
        return result

