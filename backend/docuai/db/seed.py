"""
Idempotent catalog seeding.

Runs from the app lifespan when SEED_CATALOG is true. Every record is
looked up by name first, so restarting the app never duplicates rows and
never overwrites edits made through the API.

Seeds:
  - document categories ("Others (Default)" is the default)
  - LLM providers and their models
  - prompt formats ("CTO" is the default)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from docuai.store.base import CatalogStore

logger = logging.getLogger(__name__)


_ANALYSIS_FOOTER = (
    "Return a concise summary, the key entities (people, organisations, dates, "
    "amounts) and any risks or action items you find."
)

DEFAULT_CATEGORIES: list[dict] = [
    {
        "name": "Supplier Management",
        "description": (
            "For supplier contracts, vendor agreements, procurement documents, "
            "and supplier evaluations"
        ),
        "prompt_template": (
            "You are a procurement and vendor management specialist. Identify the "
            "supplier, the commercial terms, delivery and quality obligations, "
            f"and renewal or termination dates. {_ANALYSIS_FOOTER}"
        ),
        "is_default": False,
    },
    {
        "name": "Software Documentation",
        "description": (
            "Technical documentation, API specs, user manuals, and software "
            "development guides"
        ),
        "prompt_template": (
            "You are a senior software engineer. Identify the system described, its "
            "components and interfaces, setup requirements and known limitations. "
            f"{_ANALYSIS_FOOTER}"
        ),
        "is_default": False,
    },
    {
        "name": "Financial Documents",
        "description": (
            "Financial reports, budgets, invoices, expense reports, and accounting "
            "documents"
        ),
        "prompt_template": (
            "You are a financial analyst. Extract totals, line items, periods, "
            "currencies and counterparties, and flag inconsistencies between figures. "
            f"{_ANALYSIS_FOOTER}"
        ),
        "is_default": False,
    },
    {
        "name": "Legal Documents",
        "description": (
            "Contracts, agreements, policies, compliance documents, and legal "
            "correspondence"
        ),
        "prompt_template": (
            "You are a legal analyst. Identify the parties, governing law, "
            "obligations, liabilities, termination clauses and deadlines. "
            f"{_ANALYSIS_FOOTER}"
        ),
        "is_default": False,
    },
    {
        "name": "Others (Default)",
        "description": "General document analysis for uncategorized documents",
        "prompt_template": (
            "You are a document intelligence analyst. Classify the document, "
            f"describe its purpose and audience. {_ANALYSIS_FOOTER}"
        ),
        "is_default": True,
    },
]


@dataclass(frozen=True)
class _ModelSeed:
    name:               str
    display_name:       str
    description:        str
    cost_per_1k_tokens: float
    max_tokens:         int = 4096


DEFAULT_PROVIDERS: dict[tuple[str, str], list[_ModelSeed]] = {
    ("openai", "OpenAI"): [
        _ModelSeed("gpt-4o", "ChatGPT 4o",
                   "Most advanced OpenAI model with improved reasoning, coding, and math capabilities", 0.03),
        _ModelSeed("gpt-4o-mini", "ChatGPT 4o Mini", "Faster and more affordable version of GPT-4o", 0.015),
        _ModelSeed("gpt-4-turbo", "ChatGPT 4 Turbo", "Enhanced version of GPT-4 with improved performance", 0.01),
    ],
    ("anthropic", "Anthropic"): [
        _ModelSeed("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet",
                   "Anthropic's most intelligent model with enhanced reasoning capabilities", 0.03),
        _ModelSeed("claude-3-haiku-20240307", "Claude 3 Haiku", "Fast and cost-effective model for simple tasks", 0.0025),
        _ModelSeed("claude-3-opus-20240229", "Claude 3 Opus", "Most powerful model for complex reasoning and analysis", 0.075),
    ],
    ("mistral", "Mistral AI"): [
        _ModelSeed("mistral-large-latest", "Mistral Large", "Top-tier reasoning model for high-complexity tasks", 0.024),
        _ModelSeed("mistral-small-latest", "Mistral Small", "Cost-efficient model for simple tasks", 0.006),
    ],
}

DEFAULT_PROMPT_FORMATS: list[dict] = [
    {"name": "CTO", "description": "(Context → Task → Output)",
     "structure": "Background → Instruction → Desired format",
     "best_for": "General use", "purpose": "Clear, structured prompts", "is_default": True},
    {"name": "IDEAL", "description": "Identify → Define → Explore → Act → Learn",
     "structure": "Identify → Define → Explore → Act → Learn",
     "best_for": "Problem-solving", "purpose": "Step-by-step critical thinking", "is_default": False},
    {"name": "CUP", "description": "(Context → User → Purpose)",
     "structure": "Situation → Target audience → Goal",
     "best_for": "Marketing, UX, writing", "purpose": "Focused, audience-driven content", "is_default": False},
    {"name": "GROW", "description": "Goal → Reality → Options → Way forward",
     "structure": "Goal → Reality → Options → Way forward",
     "best_for": "Coaching, planning", "purpose": "Decision-making and personal development", "is_default": False},
    {"name": "PPO", "description": "(Persona → Problem → Outcome)",
     "structure": "Who → What's the issue → What they want",
     "best_for": "Empathy-based writing", "purpose": "Customer-centric prompts", "is_default": False},
    {"name": "TACO", "description": "(Tone → Audience → Context → Objective)",
     "structure": "Style → Reader → Scenario → Goal",
     "best_for": "Branding, copywriting", "purpose": "Voice-aligned messaging", "is_default": False},
]


async def seed_categories(catalog: CatalogStore) -> int:
    existing = {c.name for c in await catalog.list_categories()}
    created = 0
    for data in DEFAULT_CATEGORIES:
        if data["name"] in existing:
            continue
        await catalog.create_category(**data)
        created += 1
    return created


async def seed_llm_catalog(catalog: CatalogStore) -> int:
    providers = {p.name: p for p in await catalog.list_providers()}
    created = 0
    for (name, display_name), models in DEFAULT_PROVIDERS.items():
        provider = providers.get(name)
        if provider is None:
            provider = await catalog.create_provider(name=name, display_name=display_name)
            created += 1

        known = {m.name for m, _ in await catalog.list_models(provider_id=provider.id)}
        for seed in models:
            if seed.name in known:
                continue
            await catalog.create_model(
                provider_id=provider.id,
                name=seed.name,
                display_name=seed.display_name,
                description=seed.description,
                max_tokens=seed.max_tokens,
                cost_per_1k_tokens=seed.cost_per_1k_tokens,
            )
            created += 1
    return created


async def seed_prompt_formats(catalog: CatalogStore) -> int:
    existing = {f.name for f in await catalog.list_prompt_formats()}
    created = 0
    for data in DEFAULT_PROMPT_FORMATS:
        if data["name"] in existing:
            continue
        await catalog.create_prompt_format(**data)
        created += 1
    return created


async def seed_catalog(catalog: CatalogStore) -> dict[str, int]:
    """Insert whatever default catalog rows are missing; returns counts created."""
    counts = {
        "categories":     await seed_categories(catalog),
        "llm":            await seed_llm_catalog(catalog),
        "prompt_formats": await seed_prompt_formats(catalog),
    }
    logger.info(
        "Catalog seeded | categories=%d llm=%d prompt_formats=%d",
        counts["categories"], counts["llm"], counts["prompt_formats"],
    )
    return counts
