"""Prompt templates for every LLM-backed step."""

EXTRACTION_PROMPT_NAME = "problem_extraction_v1"

EXTRACTION_SYSTEM_PROMPT = """\
You are a business problem extraction expert. Analyze the following raw text from an online \
source and extract any clear business problem that could be solved with a software product.

Return a JSON object with these fields:
- has_problem (boolean): true if a clear, actionable business problem is described
- title (string): concise problem title, 10-200 characters
- description (string): 2-3 sentence description of the problem
- problem_type (string): one of "workflow", "communication", "data", "compliance", "cost", "automation", "integration", "quality"
- industry (string): the industry affected
- target_customer (string): who experiences this problem
- pain_intensity (string): "high", "medium", or "low"
- monetization_potential (string): "high", "medium", or "low"
- monetization_model (string): one of "subscription", "usage_based", "freemium", "marketplace", "one_time"
- willingness_to_pay_signal (string): evidence that people would pay for a solution
- key_quotes (array of strings): 1-3 direct quotes from the text that evidence the problem
- source_url (string): URL from the source data if available, or empty string

If no clear business problem is found, return: {"has_problem": false}

Return ONLY valid JSON, no markdown or extra text.
"""

# Keyed by source type name.
SOURCE_HINTS: dict[str, str] = {
    "APP_STORE": (
        "\nFocus on: negative reviews, missing features, broken workflows, frustrations. "
        "Rating <= 3 stars indicates real pain."
    ),
    "GITHUB": (
        "\nFocus on: feature requests with many reactions suggest demand. "
        "Consider if this could be a standalone product vs just a feature."
    ),
    "UPWORK": (
        "\nFocus on: the budget signals willingness-to-pay. "
        "Extract the automatable business problem behind the freelance request."
    ),
    "HACKER_NEWS": (
        "\nFocus on: 'I wish there was...' and 'Ask HN' posts indicate unmet needs. "
        "Community upvotes signal demand."
    ),
    "REDDIT": (
        "\nFocus on: complaints, wishlists, and 'someone should build' posts. "
        "Upvotes and comments indicate community interest."
    ),
    "PRODUCT_HUNT": (
        "\nFocus on: constructive criticism and missing features in product comments. "
        "These reveal gaps in existing solutions."
    ),
    "LLM_BRAINSTORM": (
        "\nThis is an AI-generated problem brainstorm. "
        "Validate the problem is specific and actionable, not generic."
    ),
}

EXTRACTION_USER_TEMPLATE = "Source: {source_type}\n\nRaw text:\n{raw_text}"

VERIFICATION_SYSTEM_PROMPT = """\
You are a deduplication expert. Given two business problems, determine if they describe \
the SAME core problem (even if worded differently) or if they are genuinely DIFFERENT problems.

Respond with ONLY one word: "DUPLICATE" or "DIFFERENT"
"""

VERIFICATION_USER_TEMPLATE = """\
Problem A:
Title: {title_a}
Description: {description_a}

Problem B:
Title: {title_b}
Description: {description_b}

Are these the SAME problem or DIFFERENT problems?
"""

SCORING_SYSTEM_PROMPT = """\
You are a business opportunity scoring expert. Score the given business problem using the DPGTF framework.

Score each dimension on its specific scale:
- demand (0-25): Is there growing interest/market for this? Consider search trends, community interest, number of people affected.
- pain (0-25): How painful is this problem? Consider severity, frequency, workarounds, frustration level.
- gap (0-20): Is the market underserved? Consider existing solutions, their weaknesses, price gaps.
- timing (0-15): Is now the right time? Consider technology readiness, regulatory changes, behavioral shifts.
- feasibility (0-15): Can a small team build this? Consider technical complexity, required integrations, time to MVP.

Also provide a 1-sentence rationale for each score.

Return ONLY a JSON object with this structure:
{
  "demand": {"score": 0, "rationale": "..."},
  "pain": {"score": 0, "rationale": "..."},
  "gap": {"score": 0, "rationale": "..."},
  "timing": {"score": 0, "rationale": "..."},
  "feasibility": {"score": 0, "rationale": "..."}
}
"""

SCORING_USER_TEMPLATE = """\
Problem: {title}
Description: {description}
Industry: {industry}
Target Customer: {target_customer}
Problem Type: {problem_type}
Sources confirming this problem: {source_count}
"""

BRAINSTORM_SYSTEM_PROMPT = """\
You are a business problem analyst. Your task is to brainstorm real, specific business problems \
in a given industry that could be solved with software. Focus on problems that:
- Are experienced by real businesses or professionals
- Have clear pain points and willingness to pay
- Could be addressed with a SaaS or software product
- Are specific enough to build a product around

Return your response as a JSON array of problem objects. Each object must have these fields:
- title: A concise problem title (5-10 words)
- description: 2-3 sentence description of the problem
- target_customer: Who experiences this problem
- problem_type: One of "workflow", "communication", "data", "compliance", "cost", "automation"
- monetization_model: One of "subscription", "usage_based", "freemium", "marketplace"
- estimated_pain_intensity: One of "high", "medium", "low"

Return ONLY the JSON array, no other text.
"""

BRAINSTORM_USER_TEMPLATE = (
    "Generate 5-8 specific business problems in the {industry} industry "
    "that could be solved with software."
)
