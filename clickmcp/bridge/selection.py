"""
Selection rules: which commands become tools, and with which inherited flags.

Rules are evaluated against a node's space-separated command path:

- A matching *deny* rule excludes the node, whatever else matches.
- Otherwise the *first* matching *allow* rule includes the node, and its
  inherited-flag policy decides which ancestor options the tool keeps.
- No matching allow rule means the node is not a tool.

Independently of the rules, non-runnable, hidden and deprecated commands
are never exposed, nor is anything under the built-in ``mcp``, ``help``
and ``completion`` commands.
"""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, Iterable, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from clickmcp.bridge.tree import CommandNode, FlagSpec

logger = logging.getLogger(__name__)

BUILTIN_COMMANDS = ("mcp", "help", "completion")


class RuleKind(str, Enum):
    EXACT = "exact"
    PREFIX = "prefix"
    GLOB = "glob"
    LIST = "list"
    CONTAINS = "contains"


class Polarity(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class FlagPolicy(str, Enum):
    ALL = "all"
    NONE = "none"
    NAMED = "named"


class InheritedFlagRule(BaseModel):
    """Which inherited (ancestor) options an allowed command keeps."""

    model_config = ConfigDict(frozen=True)

    mode: FlagPolicy = FlagPolicy.ALL
    names: Tuple[str, ...] = ()

    @model_validator(mode="after")
    def _names_only_when_named(self) -> "InheritedFlagRule":
        if self.names and self.mode is not FlagPolicy.NAMED:
            raise ValueError(f"flag names given with inherited-flag mode {self.mode.value!r}")
        return self

    @classmethod
    def all(cls) -> "InheritedFlagRule":
        return cls(mode=FlagPolicy.ALL)

    @classmethod
    def none(cls) -> "InheritedFlagRule":
        return cls(mode=FlagPolicy.NONE)

    @classmethod
    def allow(cls, *names: str) -> "InheritedFlagRule":
        return cls(mode=FlagPolicy.NAMED, names=tuple(names))

    def apply(self, names: Iterable[str]) -> FrozenSet[str]:
        """Subset of ``names`` this policy retains."""
        if self.mode is FlagPolicy.ALL:
            return frozenset(names)
        if self.mode is FlagPolicy.NONE:
            return frozenset()
        wanted = set(self.names)
        return frozenset(n for n in names if n in wanted)


class SelectionRule(BaseModel):
    """One allow or deny rule over command paths."""

    model_config = ConfigDict(frozen=True)

    kind: RuleKind = RuleKind.EXACT
    patterns: Tuple[str, ...]
    polarity: Polarity = Polarity.ALLOW
    inherited: InheritedFlagRule = Field(default_factory=InheritedFlagRule)

    @field_validator("patterns", mode="before")
    @classmethod
    def _coerce_patterns(cls, value: Any) -> Any:
        if isinstance(value, str):
            return (value,)
        return value

    @field_validator("patterns")
    @classmethod
    def _check_patterns(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        if not value:
            raise ValueError("a selection rule needs at least one pattern")
        cleaned = tuple(" ".join(p.split()) for p in value)
        if any(not p for p in cleaned):
            raise ValueError("selection rule patterns must be non-empty")
        return cleaned

    @field_validator("inherited", mode="before")
    @classmethod
    def _coerce_inherited(cls, value: Any) -> Any:
        # YAML shorthands: "all", "none", or a list of option names
        if isinstance(value, str):
            return {"mode": value}
        if isinstance(value, (list, tuple)):
            return {"mode": FlagPolicy.NAMED, "names": tuple(value)}
        return value

    @model_validator(mode="after")
    def _check_kind(self) -> "SelectionRule":
        if self.kind in (RuleKind.EXACT, RuleKind.PREFIX, RuleKind.GLOB, RuleKind.CONTAINS) and len(self.patterns) != 1:
            raise ValueError(f"a {self.kind.value!r} rule takes exactly one pattern; use 'list' for several")
        return self

    def matches(self, path: str) -> bool:
        pattern = self.patterns[0]
        if self.kind is RuleKind.EXACT:
            return path == pattern
        if self.kind is RuleKind.LIST:
            return path in self.patterns
        if self.kind is RuleKind.PREFIX:
            # whole words only: "kubectl get" matches "kubectl get pods", not "kubectl getter"
            return path == pattern or path.startswith(pattern + " ")
        if self.kind is RuleKind.GLOB:
            return fnmatch.fnmatchcase(path, pattern)
        return pattern in path


# ── Rule constructors ─────────────────────────────────────────────────────


def allow_cmds(*paths: str, inherited: Optional[InheritedFlagRule] = None) -> SelectionRule:
    """Allow exactly the listed command paths."""
    return _rule(RuleKind.LIST, paths, Polarity.ALLOW, inherited)


def exclude_cmds(*paths: str) -> SelectionRule:
    return _rule(RuleKind.LIST, paths, Polarity.DENY)


def allow_prefix(prefix: str, inherited: Optional[InheritedFlagRule] = None) -> SelectionRule:
    """Allow a command and everything below it."""
    return _rule(RuleKind.PREFIX, (prefix,), Polarity.ALLOW, inherited)


def exclude_prefix(prefix: str) -> SelectionRule:
    return _rule(RuleKind.PREFIX, (prefix,), Polarity.DENY)


def allow_glob(pattern: str, inherited: Optional[InheritedFlagRule] = None) -> SelectionRule:
    return _rule(RuleKind.GLOB, (pattern,), Polarity.ALLOW, inherited)


def exclude_glob(pattern: str) -> SelectionRule:
    return _rule(RuleKind.GLOB, (pattern,), Polarity.DENY)


def allow_cmds_containing(text: str, inherited: Optional[InheritedFlagRule] = None) -> SelectionRule:
    return _rule(RuleKind.CONTAINS, (text,), Polarity.ALLOW, inherited)


def exclude_cmds_containing(text: str) -> SelectionRule:
    return _rule(RuleKind.CONTAINS, (text,), Polarity.DENY)


def allow_all(inherited: Optional[InheritedFlagRule] = None) -> SelectionRule:
    """Catch-all rule used when no rules are configured."""
    return _rule(RuleKind.GLOB, ("*",), Polarity.ALLOW, inherited)


def _rule(kind, patterns, polarity, inherited=None) -> SelectionRule:
    return SelectionRule(
        kind=kind,
        patterns=tuple(patterns),
        polarity=polarity,
        inherited=inherited or InheritedFlagRule.all(),
    )


# ── Evaluation ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Selection:
    """Outcome of evaluating the rules against one node."""

    included: bool
    allowed_inherited: FrozenSet[str] = field(default_factory=frozenset)
    rule_index: Optional[int] = None
    reason: str = ""


def flag_exposed(flag: FlagSpec) -> bool:
    return not (flag.hidden or flag.deprecated)


def is_builtin(node: CommandNode) -> bool:
    """Commands the bridge never exposes, regardless of rules."""
    if node.hidden or node.deprecated:
        return True
    return any(segment in BUILTIN_COMMANDS for segment in node.command_path[1:])


def select(node: CommandNode, rules: Sequence[SelectionRule]) -> Selection:
    """Decide whether ``node`` becomes a tool under ``rules``."""
    if not node.runnable:
        return Selection(False, reason="not runnable")
    if is_builtin(node):
        return Selection(False, reason="hidden, deprecated or built-in")

    path = node.path
    first_allow: Optional[int] = None
    for index, rule in enumerate(rules):
        if not rule.matches(path):
            continue
        if rule.polarity is Polarity.DENY:
            logger.debug("Command %r denied by rule %d", path, index)
            return Selection(False, rule_index=index, reason="denied")
        if first_allow is None:
            first_allow = index

    if first_allow is None:
        return Selection(False, reason="no allow rule matched")

    inherited = [f.name for f in node.inherited_flags() if flag_exposed(f)]
    allowed = rules[first_allow].inherited.apply(inherited)
    return Selection(True, allowed_inherited=allowed, rule_index=first_allow)
