"""
Prompt text and generation defaults for the performance coach.

Administrators can override any of these through the settings store; the
values here are what the system serves when nothing has been configured.
"""

from dataclasses import asdict, dataclass, field, fields
from typing import Any

BASE_SYSTEM_PROMPT = """You are an AI performance coach for automotive service advisors.

CORE IDENTITY:
- You are knowledgeable about automotive service operations
- You help advisors improve their performance metrics
- You give actionable, specific advice based on the data provided

RESPONSE STYLE:
- Keep responses concise (2-4 paragraphs max)
- Use bullet points for multiple insights
- Quote numbers exactly as they appear in the data

LIMITATIONS:
- Only discuss performance data provided in the AUTHORITATIVE DATA section
- Never estimate, round, calculate or invent numbers that are not in the data
- If the data does not answer the question, say so clearly"""

ROLE_PROMPTS = {
    "advisor": (
        "You are speaking directly to a service advisor about their personal performance.\n"
        "Be encouraging and focus on specific actions they can take to improve their metrics."
    ),
    "manager": (
        "You are providing insights to a manager about their team or store performance.\n"
        "Focus on coaching opportunities and operational improvements."
    ),
    "admin": (
        "You are providing executive-level insights for administrative users.\n"
        "Focus on high-level trends, market comparisons and strategic recommendations."
    ),
}

ROLE_ALIASES = {
    "advisor": "advisor",
    "manager": "manager",
    "store_manager": "manager",
    "market_manager": "manager",
    "admin": "admin",
    "administrator": "admin",
}

CHAT_TEMPLATE = """{system_prompt}

{role_prompt}

CURRENT CONTEXT:
- User: {user_name} ({user_role})
- Subject: {entity_name} ({entity_kind})
- Data Period: {period}

{data_section}
{context_section}
USER QUESTION: "{query}"

INSTRUCTIONS:
Answer using only the figures between the AUTHORITATIVE DATA markers. If the
data doesn't contain the information needed, say so clearly."""

GENERAL_TEMPLATE = """{system_prompt}

{role_prompt}

USER QUESTION: "{query}"

INSTRUCTIONS:
This question is not about specific performance figures. Answer it helpfully
without quoting any sales, service or profit numbers."""

SCORECARD_JSON_TEMPLATE = """Output only the JSON below. No code, no markdown, no explanations, no currency symbols:

{json_body}"""

UNAVAILABLE_DATA = "Performance data unavailable."

DATA_BEGIN = "=== AUTHORITATIVE DATA BEGIN ==="
DATA_END = "=== AUTHORITATIVE DATA END ==="

SCORECARD_KEYS = (
    "advisor", "period", "invoices", "sales", "gpSales", "gpPercent", "retailTires", "allTires",
)


@dataclass
class GenerationDefaults:
    """Decoding parameters served to the model client."""
    temperature: float = 0.1
    top_k: int = 10
    top_p: float = 0.3
    max_tokens: int = 2048
    seed: int = 42
    timeout_seconds: float = 120.0


@dataclass
class AgentSettings:
    """Administrator-editable prompt configuration."""
    system_prompt: str = BASE_SYSTEM_PROMPT
    role_prompts: dict[str, str] = field(default_factory=lambda: dict(ROLE_PROMPTS))
    chat_template: str = CHAT_TEMPLATE
    general_template: str = GENERAL_TEMPLATE
    scorecard_template: str = SCORECARD_JSON_TEMPLATE
    generation: GenerationDefaults = field(default_factory=GenerationDefaults)

    def role_prompt(self, role: str | None) -> str:
        fallback = self.role_prompts.get("advisor", ROLE_PROMPTS["advisor"])
        return self.role_prompts.get(canonical_role(role), fallback)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        base: "AgentSettings | None" = None,
    ) -> "AgentSettings":
        """Overlay a stored document on ``base``; blank prompts keep the base text."""
        defaults = base or cls()
        generation_keys = {f.name for f in fields(GenerationDefaults)}
        generation = {
            **asdict(defaults.generation),
            **{k: v for k, v in data.get("generation", {}).items() if k in generation_keys},
        }
        role_prompts = {
            **defaults.role_prompts,
            **{k: v for k, v in data.get("role_prompts", {}).items() if v},
        }
        return cls(
            system_prompt=data.get("system_prompt") or defaults.system_prompt,
            role_prompts=role_prompts,
            chat_template=data.get("chat_template") or defaults.chat_template,
            general_template=data.get("general_template") or defaults.general_template,
            scorecard_template=data.get("scorecard_template") or defaults.scorecard_template,
            generation=GenerationDefaults(**generation),
        )


def canonical_role(role: str | None) -> str:
    """Map a user role to one of advisor/manager/admin; unknown roles are advisors."""
    if not role:
        return "advisor"
    return ROLE_ALIASES.get(role.lower(), "advisor")
