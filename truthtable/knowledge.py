"""
Static business-formation knowledge base.

Small curated reference set used as RAG grounding. Snippets are ranked by
how many domain-vocabulary terms they share with the query.
"""

import re
from typing import List, Tuple

from truthtable.models import KnowledgeSnippet

BUSINESS_KNOWLEDGE_BASE: Tuple[KnowledgeSnippet, ...] = (
    KnowledgeSnippet(
        category="LLC Formation",
        content=(
            "LLC (Limited Liability Company) formation provides personal liability protection while "
            "offering tax flexibility. Key steps: 1) Choose business name and verify availability, "
            "2) File Articles of Organization with state, 3) Create Operating Agreement, 4) Obtain EIN "
            "from IRS, 5) Open business bank account, 6) Get required licenses/permits."
        ),
    ),
    KnowledgeSnippet(
        category="State Selection",
        content=(
            "Most businesses file in their home state for simplicity. Delaware offers strong legal "
            "protections and privacy. Nevada has no state income tax. Wyoming has low fees and strong "
            "privacy. Consider: business location, tax implications, legal requirements, and ongoing "
            "compliance costs."
        ),
    ),
    KnowledgeSnippet(
        category="Business Name Requirements",
        content=(
            "Business name must be unique in your state, not misleading, and include proper entity "
            "identifier (LLC, Corp, etc.). Avoid names similar to existing businesses. Check domain "
            "availability. Consider trademark implications. Name should reflect your brand and be "
            "memorable."
        ),
    ),
    KnowledgeSnippet(
        category="Operating Agreement",
        content=(
            "Operating Agreement is crucial for LLCs - it defines ownership, management structure, "
            "profit distribution, and dispute resolution. Even single-member LLCs should have one for "
            "liability protection. Include: member roles, capital contributions, voting rights, buyout "
            "provisions, and dissolution procedures."
        ),
    ),
    KnowledgeSnippet(
        category="EIN Application",
        content=(
            "EIN (Employer Identification Number) is required for business bank accounts, hiring "
            "employees, and tax purposes. Apply online at IRS.gov for immediate issuance. Free service. "
            "Required for: LLCs with employees, multi-member LLCs, or if you want to avoid using SSN "
            "for business."
        ),
    ),
    KnowledgeSnippet(
        category="Business Bank Account",
        content=(
            "Separate business and personal finances immediately after formation. Required for: "
            "liability protection, professional appearance, easier accounting, and tax compliance. "
            "Bring: EIN, Articles of Organization, Operating Agreement, and personal ID. Consider "
            "online banks for convenience."
        ),
    ),
    KnowledgeSnippet(
        category="Licenses and Permits",
        content=(
            "Requirements vary by industry and location. Common needs: business license, professional "
            "licenses, health permits, zoning permits, sales tax permit. Check with: city/county clerk, "
            "state licensing boards, industry associations. Failure to obtain can result in fines or "
            "business closure."
        ),
    ),
    KnowledgeSnippet(
        category="Tax Considerations",
        content=(
            "LLCs offer tax flexibility: default pass-through taxation, option to elect corporate "
            "taxation. Consider: self-employment taxes, state taxes, sales taxes, estimated tax "
            "payments. Track all business expenses. Consider hiring a tax professional for complex "
            "situations."
        ),
    ),
    KnowledgeSnippet(
        category="Insurance Requirements",
        content=(
            "Essential coverage: general liability insurance, professional liability (errors & "
            "omissions), workers' compensation (if employees), property insurance. Consider: cyber "
            "liability, business interruption, key person insurance. Shop around for best rates and "
            "coverage."
        ),
    ),
    KnowledgeSnippet(
        category="Compliance Requirements",
        content=(
            "Annual requirements: state filings, tax returns, license renewals, insurance updates. "
            "Track deadlines with calendar system. Consider compliance software or professional "
            "services. Failure can result in: fines, loss of liability protection, business "
            "dissolution."
        ),
    ),
)

# Fixed domain vocabulary used for knowledge filtering and key-topic tagging
DOMAIN_KEYWORDS: Tuple[str, ...] = (
    "llc", "formation", "business", "name", "state", "tax", "license", "insurance",
    "ein", "operating agreement", "bank", "permit", "compliance", "corporation",
    "partnership", "trademark", "domain", "brand", "liability", "registered agent",
)


def _contains(text: str, term: str) -> bool:
    # Allow simple plurals ("licenses", "taxes")
    return re.search(r"\b" + re.escape(term) + r"(?:s|es)?\b", text) is not None


def vocabulary_terms(text: str) -> List[str]:
    """Domain-vocabulary terms present in a piece of text."""
    lower = text.lower()
    return [term for term in DOMAIN_KEYWORDS if _contains(lower, term)]


def select_knowledge(query: str, limit: int = 3) -> List[KnowledgeSnippet]:
    """
    Rank knowledge snippets against a query.

    Snippets are ordered by (vocabulary terms shared with the query,
    vocabulary terms in the snippet), both descending. Ties keep knowledge
    base order. Snippets with no vocabulary terms at all are excluded.

    Args:
        query: Free-text user query
        limit: Maximum number of snippets

    Returns:
        Up to `limit` snippets
    """
    query_terms = set(vocabulary_terms(query or ""))
    scored = []
    for index, snippet in enumerate(BUSINESS_KNOWLEDGE_BASE):
        snippet_terms = set(vocabulary_terms(f"{snippet.category} {snippet.content}"))
        if not snippet_terms:
            continue
        overlap = len(snippet_terms & query_terms)
        scored.append((-overlap, -len(snippet_terms), index, snippet))

    scored.sort(key=lambda item: item[:3])
    return [item[3] for item in scored[:limit]]


def extract_key_topics(text: str) -> List[str]:
    """Domain vocabulary found in a transcript, for the vectorized store."""
    return vocabulary_terms(text or "")
