"""Risk rule tables.

Every pattern the classifier uses lives here as data. The built-in table can
be replaced (or extended) by a YAML file named in the configuration, so the
policy is auditable and updatable without touching classification logic.

YAML format::

    version: 4
    extends_default: true      # append to the built-in table
    rules:
      - id: deny.terraform-destroy
        kind: denylist
        pattern: '\\bterraform\\s+destroy\\b'
        tier: core
        reason: Infrastructure teardown
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from warden.foundation.errors import ConfigError, ErrorCode
from warden.guardrails.types import RiskTier

logger = logging.getLogger(__name__)


class RuleKind(Enum):
    """What a rule's pattern is matched against."""

    DENYLIST = "denylist"
    """Any string parameter value."""

    SELF_MODIFICATION = "self_modification"
    """The operation name."""

    CRITICAL_PATH = "critical_path"
    """Path-like tokens in parameter values."""

    COMMAND_OPERATION = "command_operation"
    """The operation name; marks operations that run a command string."""

    READONLY_COMMAND = "readonly_command"
    """The command text of a command operation."""

    MUTATING_VERB = "mutating_verb"
    """Each verb token of the operation name."""

    READONLY_VERB = "readonly_verb"
    """Each verb token of the operation name."""


@dataclass(frozen=True, slots=True)
class RiskRule:
    """One pattern and the tier it assigns."""

    id: str
    kind: RuleKind
    pattern: str
    """Case-insensitive regular expression."""

    tier: RiskTier
    reason: str = ""

    def matches(self, text: str) -> bool:
        return re.search(self.pattern, text, re.IGNORECASE) is not None

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "pattern": self.pattern,
            "tier": self.tier.value,
            "reason": self.reason,
        }


@dataclass(frozen=True, slots=True)
class RuleSet:
    """A versioned, ordered table of risk rules."""

    version: int
    rules: tuple[RiskRule, ...]

    command_keys: tuple[str, ...] = ("command", "cmd", "script")
    """Parameters holding command text for command operations."""

    content_keys: tuple[str, ...] = ("content", "text", "body", "message", "reason", "diff")
    """Parameters holding free text, never treated as paths."""

    def of_kind(self, kind: RuleKind) -> tuple[RiskRule, ...]:
        return tuple(r for r in self.rules if r.kind is kind)

    def first_match(self, kind: RuleKind, text: str) -> RiskRule | None:
        for rule in self.rules:
            if rule.kind is kind and rule.matches(text):
                return rule
        return None


def _rule(id: str, kind: RuleKind, pattern: str, tier: RiskTier, reason: str) -> RiskRule:
    return RiskRule(id=id, kind=kind, pattern=pattern, tier=tier, reason=reason)


_D, _S, _P = RuleKind.DENYLIST, RuleKind.SELF_MODIFICATION, RuleKind.CRITICAL_PATH
_C, _RC = RuleKind.COMMAND_OPERATION, RuleKind.READONLY_COMMAND
_MV, _RV = RuleKind.MUTATING_VERB, RuleKind.READONLY_VERB

DEFAULT_RULES: tuple[RiskRule, ...] = (
    # Dangerous parameter patterns
    _rule("deny.rm-recursive", _D, r"\brm\s+-(?:[a-z]*r[a-z]*f?|[a-z]*f[a-z]*r)[a-z]*\b",
          RiskTier.CORE, "Recursive delete"),
    _rule("deny.git-reset-hard", _D, r"\bgit\s+reset\s+--hard\b",
          RiskTier.CORE, "Discards working tree"),
    _rule("deny.git-push-force", _D, r"\bgit\s+push\b.*\s(?:-f|--force(?:-with-lease)?)\b",
          RiskTier.CORE, "Rewrites remote history"),
    _rule("deny.git-clean", _D, r"\bgit\s+clean\s+-[a-z]*f",
          RiskTier.CORE, "Deletes untracked files"),
    _rule("deny.sudo", _D, r"\b(?:sudo|doas)\b",
          RiskTier.CORE, "Privilege escalation"),
    _rule("deny.chmod-open", _D, r"\bchmod\s+(?:-R\s+)?(?:777|000|a\+rwx)\b",
          RiskTier.CORE, "Permission blow-open"),
    _rule("deny.dd", _D, r"\bdd\s+if=",
          RiskTier.CORE, "Raw disk copy"),
    _rule("deny.raw-device", _D, r">\s*/dev/(?:sd[a-z]|nvme\d|hd[a-z]|disk\d)",
          RiskTier.CORE, "Raw device write"),
    _rule("deny.mkfs", _D, r"\bmkfs(?:\.\w+)?\b",
          RiskTier.CORE, "Filesystem format"),
    _rule("deny.fork-bomb", _D, r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:",
          RiskTier.CORE, "Fork bomb"),
    _rule("deny.kill-9", _D, r"\bkill\s+-9\b",
          RiskTier.CORE, "Forced process kill"),
    _rule("deny.shutil-rmtree", _D, r"\bshutil\.rmtree\s*\(",
          RiskTier.CORE, "Recursive delete"),
    # Named self-modification operations
    _rule("self.modify-config", _S, r"^(?:modify|update|set|write|patch)_self(?:_config)?$",
          RiskTier.CORE, "Self-configuration change"),
    _rule("self.set-token", _S, r"^set_high_risk_token$",
          RiskTier.CORE, "Approval token management"),
    # The agent's own configuration and build artifacts
    _rule("path.self-config", _P, r"(?:^|/)config/self\.json$",
          RiskTier.CORE, "Agent self-configuration"),
    _rule("path.pyproject", _P, r"(?:^|/)pyproject\.toml$",
          RiskTier.CORE, "Build configuration"),
    _rule("path.setup", _P, r"(?:^|/)setup\.(?:py|cfg)$",
          RiskTier.CORE, "Build configuration"),
    _rule("path.requirements", _P, r"(?:^|/)requirements[\w.-]*\.txt$",
          RiskTier.CORE, "Dependency pins"),
    _rule("path.lockfile", _P,
          r"(?:^|/)(?:package-lock\.json|yarn\.lock|pnpm-lock\.yaml|poetry\.lock|uv\.lock|Pipfile\.lock)$",
          RiskTier.CORE, "Dependency lockfile"),
    _rule("path.package-json", _P, r"(?:^|/)package\.json$",
          RiskTier.CORE, "Build configuration"),
    _rule("path.tsconfig", _P, r"(?:^|/)tsconfig(?:\.[\w-]+)?\.json$",
          RiskTier.CORE, "Build configuration"),
    _rule("path.env", _P, r"(?:^|/)\.env(?:\.[\w-]+)?$",
          RiskTier.CORE, "Environment secrets"),
    # Operations that run a command string
    _rule("cmd.operation", _C, r"^(?:run_command|run_shell|shell|bash|exec|execute|run)$",
          RiskTier.WRITE, "Command not on the read-only allowlist"),
    # Read-only commands
    _rule("cmd.git-readonly", _RC,
          r"^git\s+(?:(?:status|diff|log|show|blame|rev-parse|config\s+--get)\b(?!.*--output)"
          r"|branch(?:\s+(?:-a|-r|-v|-vv|--all|--remotes|--list|--show-current))*\s*$"
          r"|remote(?:\s+-v|\s+(?:show|get-url)\s+[\w.-]+)?\s*$)",
          RiskTier.READONLY, "Read-only git command"),
    _rule("cmd.inspect", _RC, r"^(?:ls|cat|head|tail|wc|file|stat|tree|du|df)\b",
          RiskTier.READONLY, "File inspection"),
    _rule("cmd.search", _RC, r"^(?:grep|rg|ag)\s+",
          RiskTier.READONLY, "Text search"),
    _rule("cmd.find", _RC, r"^find\s+(?!.*-(?:delete|exec\w*|ok\w*|fprint\w*|fls)\b)",
          RiskTier.READONLY, "File search"),
    _rule("cmd.test", _RC,
          r"^(?:pytest|python\s+-m\s+pytest|tox|(?:npm|yarn|pnpm)\s+(?:test|run\s+test|list|outdated|-v|--version))\b",
          RiskTier.READONLY, "Test run"),
    _rule("cmd.lint", _RC, r"^(?:ruff\s+check|mypy|ty|pyright|flake8|tsc|eslint)\b(?!.*--fix)",
          RiskTier.READONLY, "Static check"),
    _rule("cmd.version", _RC, r"^(?:python3?|node|pip|npm)\s+(?:-V|-v|--version)\s*$",
          RiskTier.READONLY, "Version query"),
    _rule("cmd.misc", _RC, r"^(?:(?:pwd|whoami|date|env)\s*$|which\s+\S+\s*$|echo\b)",
          RiskTier.READONLY, "Environment query"),
    # Mutating verbs in operation names
    _rule("verb.mutating", _MV,
          r"^(?:write|delete|remove|rm|create|update|modify|edit|patch|move|mv|rename|copy|cp|"
          r"install|uninstall|commit|push|merge|rebase|reset|checkout|apply|append|insert|"
          r"set|put|post|save|mkdir|touch|replace|truncate|drop|deploy|publish|upload|chmod|chown)$",
          RiskTier.WRITE, "Mutating verb"),
    # Read-only verbs in operation names
    _rule("verb.readonly", _RV,
          r"^(?:read|get|list|ls|search|grep|find|show|view|cat|stat|query|inspect|describe|"
          r"fetch|check|diff|status|log|count|head|tail|glob|lookup|explain)$",
          RiskTier.READONLY, "Read-only verb"),
)

DEFAULT_RULESET = RuleSet(version=1, rules=DEFAULT_RULES)


def load_ruleset(path: Path) -> RuleSet:
    """Load a rule table from YAML.

    Args:
        path: YAML file with ``version`` and ``rules`` keys.

    Returns:
        The loaded RuleSet (appended to the defaults when
        ``extends_default`` is true).

    Raises:
        ConfigError: If the file is unreadable, malformed, or a rule is invalid.
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise _rules_error(path, str(e), e) from e

    if not isinstance(data, dict) or not isinstance(data.get("rules"), list):
        raise _rules_error(path, "expected a mapping with a 'rules' list")

    rules = tuple(_parse_rule(path, i, raw) for i, raw in enumerate(data["rules"]))
    if data.get("extends_default", False):
        rules = DEFAULT_RULES + rules

    try:
        version = int(data.get("version", 1))
    except (TypeError, ValueError) as e:
        raise _rules_error(path, f"bad version {data.get('version')!r}", e) from e

    ruleset = RuleSet(
        version=version,
        rules=rules,
        command_keys=tuple(data.get("command_keys", DEFAULT_RULESET.command_keys)),
        content_keys=tuple(data.get("content_keys", DEFAULT_RULESET.content_keys)),
    )
    logger.info("Loaded risk rules v%d from %s (%d rules)", ruleset.version, path, len(rules))
    return ruleset


def _parse_rule(path: Path, index: int, raw: Any) -> RiskRule:
    if not isinstance(raw, dict):
        raise _rules_error(path, f"rule #{index} is not a mapping")

    missing = [k for k in ("id", "kind", "pattern") if k not in raw]
    if missing:
        raise _rules_error(path, f"rule #{index} missing {', '.join(missing)}")

    try:
        kind = RuleKind(raw["kind"])
    except ValueError as e:
        raise _rules_error(path, f"rule {raw['id']!r}: unknown kind {raw['kind']!r}", e) from e

    try:
        tier = RiskTier(raw["tier"]) if "tier" in raw else _default_tier(kind)
    except ValueError as e:
        raise _rules_error(path, f"rule {raw['id']!r}: unknown tier {raw['tier']!r}", e) from e

    try:
        re.compile(raw["pattern"])
    except re.error as e:
        raise _rules_error(path, f"rule {raw['id']!r}: bad pattern ({e})", e) from e

    return RiskRule(
        id=str(raw["id"]),
        kind=kind,
        pattern=raw["pattern"],
        tier=tier,
        reason=str(raw.get("reason", "")),
    )


def _default_tier(kind: RuleKind) -> RiskTier:
    match kind:
        case RuleKind.DENYLIST | RuleKind.SELF_MODIFICATION | RuleKind.CRITICAL_PATH:
            return RiskTier.CORE
        case RuleKind.COMMAND_OPERATION | RuleKind.MUTATING_VERB:
            return RiskTier.WRITE
        case _:
            return RiskTier.READONLY


def _rules_error(path: Path, detail: str, cause: Exception | None = None) -> ConfigError:
    return ConfigError(
        code=ErrorCode.CONFIG_RULES_INVALID,
        context={"path": str(path), "detail": detail},
        cause=cause,
    )
