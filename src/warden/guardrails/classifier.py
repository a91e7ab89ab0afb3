"""Risk classification for agent operations.

Assigns every (operation name, parameters) pair a RiskTier using only the
rule table in ``warden.guardrails.rules``. Pure and deterministic: no file
access, no environment lookups, no model calls.

Precedence, most specific first:

1. Dangerous parameter patterns anywhere in the parameters → rule tier (CORE)
2. Named self-modification operations → CORE
3. Critical paths touched by anything but a named read-only verb → CORE
4. Command operations: allowlisted read-only commands with no output
   redirection → READONLY, else WRITE
5. Any other mutating verb → WRITE
6. Everything else → READONLY

An unrecognized mutating verb falls to WRITE, never CORE or READONLY; an
unrecognized non-mutating verb falls to READONLY.
"""

import logging
import re
from collections.abc import Iterator, Mapping
from typing import Any

from warden.guardrails.rules import DEFAULT_RULESET, RiskRule, RuleKind, RuleSet
from warden.guardrails.types import RiskClassification, RiskTier

logger = logging.getLogger(__name__)

# Splits snake_case, kebab-case, dotted and camelCase names into verb tokens
_TOKEN_SPLIT = re.compile(r"[_\-.\s/:]+|(?<=[a-z0-9])(?=[A-Z])")

# Separators between chained shell commands
_COMMAND_CHAIN = re.compile(r"\|\||&&|[;|&\n]|`|\$\(")

# Stream redirections that never touch a file
_NULL_REDIRECT = re.compile(r"\d?>&\d|\d?>>?\s*/dev/null\b")

# Separators between path candidates inside one string
_PATH_SPLIT = re.compile(r"[\s=<>|;&]+")

# Characters stripped from path candidates
_PATH_STRIP = "'\"<>()[]{},;|&`"


class RiskClassifier:
    """Classify operations by the authority they require.

    Example:
        >>> classifier = RiskClassifier()
        >>> classifier.classify("write_file", {"path": "config/self.json"})
        <RiskTier.CORE: 'core'>
        >>> classifier.classify("read_file", {"path": "src/app.py"})
        <RiskTier.READONLY: 'readonly'>
    """

    def __init__(self, ruleset: RuleSet | None = None) -> None:
        self.ruleset = ruleset or DEFAULT_RULESET

    def classify(self, operation_name: str, parameters: Mapping[str, Any] | None = None) -> RiskTier:
        """Return the tier for an operation."""
        return self.explain(operation_name, parameters).tier

    def explain(
        self,
        operation_name: str,
        parameters: Mapping[str, Any] | None = None,
    ) -> RiskClassification:
        """Classify and report which rule decided."""
        result = self._classify(operation_name or "", parameters or {})
        logger.debug(
            "Classified %s as %s (%s)", operation_name, result.tier.value, result.rule_id
        )
        return result

    def _classify(self, name: str, parameters: Mapping[str, Any]) -> RiskClassification:
        rules = self.ruleset
        values = list(_string_values(parameters))

        # 1. Denylist over every string value
        for value in values:
            rule = rules.first_match(RuleKind.DENYLIST, value)
            if rule:
                return RiskClassification(rule.tier, rule.id, rule.reason)

        # 2. Named self-modification
        rule = rules.first_match(RuleKind.SELF_MODIFICATION, name)
        if rule:
            return RiskClassification(rule.tier, rule.id, rule.reason)

        tokens = _verb_tokens(name)
        readonly_verb = self._is_readonly_verb(tokens)

        op_rule = rules.first_match(RuleKind.COMMAND_OPERATION, name)

        # 3. Critical paths for anything that isn't a named read
        if op_rule or not readonly_verb:
            for candidate in self._path_candidates(parameters):
                rule = rules.first_match(RuleKind.CRITICAL_PATH, candidate)
                if rule:
                    return RiskClassification(rule.tier, rule.id, f"{rule.reason}: {candidate}")

        # 4. Commands: allowlisted reads or WRITE
        if op_rule:
            return self._classify_command(op_rule, parameters)

        # 5. Mutating verbs
        for token in tokens:
            rule = rules.first_match(RuleKind.MUTATING_VERB, token)
            if rule:
                return RiskClassification(rule.tier, rule.id, f"{rule.reason}: {token}")

        # 6. Everything else
        if readonly_verb:
            return RiskClassification(RiskTier.READONLY, "verb.readonly", "Read-only verb")
        return RiskClassification(
            RiskTier.READONLY, "default.readonly", "No mutating verb recognized"
        )

    def _classify_command(
        self,
        op_rule: RiskRule,
        parameters: Mapping[str, Any],
    ) -> RiskClassification:
        command = ""
        for key in self.ruleset.command_keys:
            value = parameters.get(key)
            if isinstance(value, str) and value.strip():
                command = value.strip()
                break

        if not command:
            return RiskClassification(op_rule.tier, op_rule.id, "Empty command")

        # Every chained segment must be read-only and write no file
        stripped = _NULL_REDIRECT.sub(" ", command)
        segments = [s.strip() for s in _COMMAND_CHAIN.split(stripped) if s.strip()]
        matched: list[str] = []
        for segment in segments:
            if ">" in segment:
                return RiskClassification(op_rule.tier, op_rule.id, f"Output redirection: {segment}")
            rule = self.ruleset.first_match(RuleKind.READONLY_COMMAND, segment)
            if rule is None:
                return RiskClassification(op_rule.tier, op_rule.id, f"{op_rule.reason}: {segment}")
            matched.append(rule.id)

        return RiskClassification(RiskTier.READONLY, matched[0], "Read-only command")

    def _is_readonly_verb(self, tokens: list[str]) -> bool:
        if not tokens:
            return False
        if any(self.ruleset.first_match(RuleKind.MUTATING_VERB, t) for t in tokens):
            return False
        return self.ruleset.first_match(RuleKind.READONLY_VERB, tokens[0]) is not None

    def _path_candidates(self, parameters: Mapping[str, Any]) -> Iterator[str]:
        content_keys = set(self.ruleset.content_keys)
        for key, value in parameters.items():
            if key in content_keys:
                continue
            for text in _string_values(value):
                yield from _path_tokens(text)


def _verb_tokens(name: str) -> list[str]:
    return [t.lower() for t in _TOKEN_SPLIT.split(name) if t]


def _string_values(value: Any) -> Iterator[str]:
    """Yield every string nested in a parameter structure."""
    if isinstance(value, str):
        yield value
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from _string_values(item)
    elif isinstance(value, (list, tuple, set, frozenset)):
        for item in value:
            yield from _string_values(item)


def _path_tokens(text: str) -> Iterator[str]:
    stripped = text.strip()
    if not stripped:
        return
    normalized = stripped.replace("\\", "/")
    yield normalized
    if _PATH_SPLIT.search(normalized):
        for token in _PATH_SPLIT.split(normalized):
            token = token.strip(_PATH_STRIP)
            if token:
                yield token
