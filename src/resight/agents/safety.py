"""Safety agent: three-way risk verdict for a proposed browser action.

Verdicts map onto ``TaskResult`` as:
    success=False                              blocked
    success=True,  confirmation_required=True  ask the user once, then proceed
    success=True,  confirmation_required=False approved

Two opinions are combined and the stricter one wins:
1. A deterministic signature screen (shortened bait links, look-alike
   domains, dark patterns, recurring charges, executable downloads...).
2. A structured model verdict. A transport failure or an unparseable reply
   degrades to approved-with-confirmation, never to a plain approval.

Explicit user intent to buy, add to cart or check out is consent and is not
gated by the screen.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from resight.agents.types import Instruction, SendEvent, TaskResult
from resight.llm_client import ChatCompletionsClient, LLMClientError, ModelRole, extract_json_object
from resight.telemetry import get_logger
from resight.telemetry.events import SAFETY_DEGRADED, SAFETY_VERDICT
from resight.telemetry.trace import TraceContext

log = get_logger(__name__)

AGENT_NAME = "Guardian"


class ThreatType(str, Enum):
    NONE = "none"
    PHISHING = "phishing"
    SCAM = "scam"
    DARK_PATTERN = "dark_pattern"
    DATA_HARVESTING = "data_harvesting"
    MALWARE = "malware"
    SKETCHY_URL = "sketchy_url"
    FAKE_URGENCY = "fake_urgency"
    RECURRING_CHARGE = "recurring_charge"
    UNKNOWN_RISK = "unknown_risk"

    @classmethod
    def parse(cls, value: Any) -> "ThreatType":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN_RISK


@dataclass(frozen=True)
class SafetyVerdict:
    safe: bool
    confirmation_required: bool
    reason: str
    threat_type: ThreatType = ThreatType.NONE

    @property
    def severity(self) -> int:
        if not self.safe:
            return 2
        return 1 if self.confirmation_required else 0

    def to_result(self) -> TaskResult:
        if not self.safe:
            return TaskResult.fail(self.reason, data={"threatType": self.threat_type.value})
        if self.confirmation_required:
            return TaskResult.ok(
                self.reason, data={"threatType": self.threat_type.value}, confirmation_required=True
            )
        return TaskResult.ok("Action approved")


APPROVED = SafetyVerdict(safe=True, confirmation_required=False, reason="Action approved")


def stricter(first: SafetyVerdict, second: SafetyVerdict) -> SafetyVerdict:
    """The more restrictive verdict; ``first`` wins ties."""
    return second if second.severity > first.severity else first


# Signature screen

_SHORTENER_RE = re.compile(
    r"\b(?:bit\.ly|tinyurl\.com|t\.co|goo\.gl|is\.gd|ow\.ly|cutt\.ly|rebrand\.ly|shorturl\.at)/\S*"
)
_BAIT_RE = re.compile(r"\b(?:free|prize|prizes|winner|won|urgent|claim|gift|reward)\b")
_LOOKALIKE_RE = re.compile(
    r"\b(?:amaz0n|arnazon|g00gle|go0gle|paypa1|pay-pal|app1e|micros0ft|faceb00k|netf1ix|we11sfargo)\b"
)
_VERIFY_ACCOUNT_RE = re.compile(
    r"\b(?:verify your (?:account|identity)|account (?:has been )?suspended|confirm your password)\b"
)
_SCAM_RE = re.compile(
    r"(?:you(?:'ve| have) won|congratulations[,!]? you|your (?:computer|device|phone) is infected"
    r"|virus (?:has been )?detected|call (?:this number|microsoft support) now)"
)
_URGENCY_RE = re.compile(
    r"(?:\bact now\b|\bexpires in \d+ (?:seconds?|minutes?)\b|\bonly \d+ minutes? left\b)"
)
_DARK_PATTERN_RE = re.compile(
    r"(?:hidden (?:fee|fees|charge|charges)|pre-?checked|pre-?selected add-?on"
    r"|free trial\b.{0,80}\b(?:auto(?:matically)?[- ]?(?:charg|bill)\w*)"
    r"|\bno thanks, i (?:don't|do not) want)"
)
_MALWARE_RE = re.compile(
    r"(?:install (?:this |the |a )?(?:browser )?extension|flash player|java update|driver update"
    r"|update your (?:browser|player) to continue)"
)
_RECURRING_RE = re.compile(
    r"(?:\bsubscri(?:be|ption)s?\b|\bauto[- ]?renew\w*|\brecurring\b|\bmembership\b"
    r"|(?:\bper|\ba|/)\s?(?:month|mo|year|yr|week)\b|\bmonthly\b|\bannually\b)"
)
_EXECUTABLE_RE = re.compile(r"\.(?:exe|dmg|apk|msi|pkg|bat|scr|jar)\b|\bdownload (?:the )?installer\b")
_PAYMENT_RE = re.compile(
    r"\b(?:credit card|debit card|card number|cvv|cvc|payment (?:details|info|information)|billing address)\b"
)
_SENSITIVE_RE = re.compile(
    r"\b(?:ssn|social security(?: number)?|bank account number|routing number|mother's maiden name)\b"
)
_EXPLICIT_INTENT_RE = re.compile(
    r"\b(?:buy|order|purchase|add (?:it |this |that |them )?to (?:my |the )?cart|check ?out|log ?in|sign ?in)\b"
)


def _block(reason: str, threat: ThreatType) -> SafetyVerdict:
    return SafetyVerdict(safe=False, confirmation_required=False, reason=reason, threat_type=threat)


def _confirm(reason: str, threat: ThreatType) -> SafetyVerdict:
    return SafetyVerdict(safe=True, confirmation_required=True, reason=reason, threat_type=threat)


def screen_signatures(action: str, page_context: str = "") -> SafetyVerdict:
    """Deterministic screen over the action and page context text.

    Returns:
        The strictest matching signature, or ``APPROVED`` when nothing matches.
    """
    text = f"{action}\n{page_context}".lower()
    explicit = bool(_EXPLICIT_INTENT_RE.search(action.lower()))

    if _SHORTENER_RE.search(text) and _BAIT_RE.search(text):
        return _block(
            "That's a shortened link paired with prize or urgency bait, a classic phishing setup.",
            ThreatType.SKETCHY_URL,
        )
    if _LOOKALIKE_RE.search(text):
        return _block(
            "The address imitates a well-known brand with swapped letters, "
            "which is how phishing sites pose as the real thing.",
            ThreatType.PHISHING,
        )
    if _SCAM_RE.search(text):
        return _block(
            "The page claims you've won something or that your device is infected. "
            "Those are scam scripts.",
            ThreatType.SCAM,
        )
    if _DARK_PATTERN_RE.search(text):
        return _block(
            "There's a hidden fee, a pre-checked add-on, or a free trial that quietly starts charging.",
            ThreatType.DARK_PATTERN,
        )
    if _MALWARE_RE.search(text):
        return _block(
            "The page wants you to install an extension or an update, a common way to push malware.",
            ThreatType.MALWARE,
        )
    if _URGENCY_RE.search(text):
        return _block(
            "The page is rushing you with a countdown. Real offers don't vanish in minutes.",
            ThreatType.FAKE_URGENCY,
        )
    if _VERIFY_ACCOUNT_RE.search(text) and not explicit:
        return _block(
            "It's asking you to verify your account or password out of the blue, "
            "which phishing pages do.",
            ThreatType.PHISHING,
        )

    if _RECURRING_RE.search(text):
        return _confirm(
            "This sets up a recurring charge. Want me to go ahead?", ThreatType.RECURRING_CHARGE
        )
    if _EXECUTABLE_RE.search(text):
        return _confirm(
            "This downloads a program that could run on your computer. Should I continue?",
            ThreatType.MALWARE,
        )
    if _SENSITIVE_RE.search(text):
        return _confirm(
            "The site is asking for sensitive personal details. Do you want to share them?",
            ThreatType.DATA_HARVESTING,
        )
    if _PAYMENT_RE.search(text) and not explicit:
        return _confirm(
            "This asks for payment details on a site you didn't ask for. Should I continue?",
            ThreatType.UNKNOWN_RISK,
        )
    return APPROVED


SAFETY_SYSTEM_PROMPT = """You protect a blind user who cannot see the red flags on a web page.
Judge the proposed browser action and answer with JSON only:
{"safe": boolean, "reason": string, "confirmationRequired": boolean, "threatType": string}

threatType: none, phishing, scam, dark_pattern, data_harvesting, malware, sketchy_url, fake_urgency, unknown_risk

APPROVE (safe true, confirmationRequired false):
- the user explicitly asked to buy, order, add to cart, check out or log in; that request is consent
- normal browsing and shopping on well-known sites
- credentials the user volunteered

CONFIRM ONCE (safe true, confirmationRequired true):
- recurring-charge subscriptions
- executable downloads
- payment entry on a site the user did not ask for
- unusually low prices or requests for unnecessary personal data

BLOCK (safe false):
- shortened or obfuscated links with bait words, misspelled brand domains, "verify your account" pages
- "you've won", fake virus warnings, countdown pressure
- hidden fees, pre-checked add-ons, trials that auto-charge
- extension or driver "updates", anything contradicting what the user actually asked for

Give the reason in one or two plain sentences the user can understand by ear."""

SAFETY_RESPONSE_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "safety_verdict",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "safe": {"type": "boolean"},
                "reason": {"type": "string"},
                "confirmationRequired": {"type": "boolean"},
                "threatType": {
                    "type": "string",
                    "enum": [t.value for t in ThreatType if t is not ThreatType.RECURRING_CHARGE],
                },
            },
            "required": ["safe", "reason", "confirmationRequired", "threatType"],
            "additionalProperties": False,
        },
    },
}


def parse_verdict(text: str) -> SafetyVerdict:
    """Parse a model reply into a verdict.

    Anything that does not yield an object with a boolean ``safe`` becomes
    approved-with-confirmation.
    """
    data = extract_json_object(text)
    if data is None or not isinstance(data.get("safe"), bool):
        return _confirm("I couldn't read the safety analysis, so please confirm.", ThreatType.UNKNOWN_RISK)
    reason = str(data.get("reason") or "").strip()
    threat = ThreatType.parse(data.get("threatType", "none"))
    if not data["safe"]:
        return _block(reason or "This looks unsafe.", threat)
    if bool(data.get("confirmationRequired", False)):
        if threat is ThreatType.NONE:
            threat = ThreatType.UNKNOWN_RISK
        return _confirm(reason or "Please confirm before I continue.", threat)
    return APPROVED


class SafetyAgent:
    """Classifies proposed actions.

    Args:
        llm: Chat-completions client for the ``safety`` role.
        send_event: Trace publisher callback.
    """

    def __init__(self, llm: ChatCompletionsClient, send_event: SendEvent) -> None:  # noqa: D107
        self.llm = llm
        self.send_event = send_event

    async def check(
        self,
        action: str,
        page_context: str = "",
        instruction: Instruction | None = None,
        trace_ctx: TraceContext | None = None,
    ) -> TaskResult:
        """Judge ``action``.

        Args:
            action: Proposed action, in words.
            page_context: What is known about the current page.
            instruction: The routed instruction; its history shows what the user already said.
            trace_ctx: Trace context for log correlation.

        Raises:
            LLMConfigurationError: If the model is not configured.
            ModelConfigError: If the safety role has no model.
        """
        self.send_event(AGENT_NAME, f'Analyzing safety of: "{action}"')
        screened = screen_signatures(action, page_context)
        modelled = await self._model_verdict(action, page_context, instruction, trace_ctx)
        verdict = stricter(screened, modelled)

        log.info(
            SAFETY_VERDICT,
            safe=verdict.safe,
            confirmation_required=verdict.confirmation_required,
            threat_type=verdict.threat_type.value,
            screened=screened.severity,
            modelled=modelled.severity,
            trace_id=trace_ctx.trace_id if trace_ctx else None,
        )
        if not verdict.safe:
            label = f" [{verdict.threat_type.value}]" if verdict.threat_type is not ThreatType.NONE else ""
            self.send_event(AGENT_NAME, f"BLOCKED{label}: {verdict.reason}")
        elif verdict.confirmation_required:
            self.send_event(AGENT_NAME, f"Heads up: {verdict.reason}")
        else:
            self.send_event(AGENT_NAME, "Looks safe, good to go")
        return verdict.to_result()

    async def _model_verdict(
        self,
        action: str,
        page_context: str,
        instruction: Instruction | None,
        trace_ctx: TraceContext | None,
    ) -> SafetyVerdict:
        prompt = f'Action requested: "{action}"\n\nPage context: {page_context or "(none)"}'
        if instruction is not None:
            prompt += f'\n\nUser instruction: "{instruction.text}"'
            if instruction.history:
                prompt += (
                    "\n\nConversation so far (the user already said these things):\n"
                    f"{instruction.history_text()}"
                )
        try:
            response = await self.llm.respond(
                role=ModelRole.SAFETY,
                messages=[{"role": "user", "content": prompt}],
                system_prompt=SAFETY_SYSTEM_PROMPT,
                response_format=SAFETY_RESPONSE_FORMAT,
                trace_ctx=trace_ctx,
            )
        except LLMClientError as e:
            log.warning(SAFETY_DEGRADED, error=str(e), error_type=type(e).__name__)
            self.send_event(AGENT_NAME, "Couldn't run the safety analysis, so I'll ask you first")
            return _confirm("Could not analyze, requesting user confirmation", ThreatType.UNKNOWN_RISK)
        return parse_verdict(response["content"])
