"""Warden - safety core for autonomous, self-modifying agents.

Warden decides whether a proposed operation or code change may proceed,
tracks how much autonomy the agent has earned, spots operational loops,
and reverts self-configuration changes that make the agent measurably worse.

Example:
    >>> from warden import GuardrailSystem
    >>> system = GuardrailSystem(workspace=Path.cwd())
    >>> auth = system.authorize("write_file", {"path": "config/self.json"})
    >>> auth.tier
    <RiskTier.CORE: 'core'>
"""

# Guardrails load first: the gate imports the rule table from them
from warden.guardrails import GuardrailSystem, RiskTier
from warden.gate import GateDecision, QualityGateInput, classify_patch

__version__ = "0.4.0"

__all__ = [
    "GateDecision",
    "GuardrailSystem",
    "QualityGateInput",
    "RiskTier",
    "__version__",
    "classify_patch",
]
