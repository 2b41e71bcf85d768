import re
from typing import Any, Optional

SUPPLEMENT_IMAGE_MAP: dict[str, str] = {
    "ashwagandha": "/supplements/ashwagandha.svg",
    "coq10": "/supplements/coq10.svg",
    "creatine-monohydrate": "/supplements/creatine.svg",
    "creatine": "/supplements/creatine.svg",
    "curcumin": "/supplements/curcumin.svg",
    "iron-ferrous-bisglycinate": "/supplements/iron.svg",
    "iron": "/supplements/iron.svg",
    "magnesium-glycinate": "/supplements/magnesium-glycinate.svg",
    "magnesium": "/supplements/magnesium-glycinate.svg",
    "omega-3-epa-dha": "/supplements/omega-3.svg",
    "omega-3": "/supplements/omega-3.svg",
    "probiotics": "/supplements/probiotics.svg",
    "vitamin-b12": "/supplements/vitamin-b12.svg",
    "b12": "/supplements/vitamin-b12.svg",
    "vitamin-c": "/supplements/vitamin-c.svg",
    "vitamin-d3": "/supplements/vitamin-d3.svg",
    "vitamin-d": "/supplements/vitamin-d3.svg",
    "zinc-picolinate": "/supplements/zinc.svg",
    "zinc": "/supplements/zinc.svg",
    "zinc-carnosine": "/supplements/zinc.svg",
}
DEFAULT_IMAGE = "/supplements/vitamin-c.svg"

SUPPLEMENT_DESCRIPTIONS: dict[str, str] = {
    "magnesium-glycinate": "Highly bioavailable form of magnesium that supports deep sleep, muscle relaxation, and stress reduction.",
    "rhodiola-rosea": "Adaptogenic herb that helps regulate cortisol levels and combat fatigue while supporting mental performance.",
    "ashwagandha": "Adaptogen that supports stress resilience, healthy testosterone levels, and sleep quality.",
    "tongkat-ali": "Traditional Malaysian herb used to support healthy testosterone levels and male vitality.",
    "creatine-monohydrate": "The most researched supplement for muscle building and high-intensity performance.",
    "vitamin-d3": "Essential vitamin for immune function, bone health, and hormone production.",
    "omega-3-epa-dha": "Essential fatty acids for heart health, brain function, and inflammation balance.",
    "zinc-picolinate": "Highly absorbable zinc for immune function, hormone production, and wound healing.",
    "melatonin": "Sleep hormone that helps regulate circadian rhythm and sleep onset.",
    "berberine": "Plant compound that supports healthy blood sugar levels and metabolic function.",
    "probiotics": "Beneficial bacteria that support digestive health, immune function, and mood.",
    "l-citrulline": "Amino acid that improves blood flow and exercise performance.",
    "beta-alanine": "Amino acid that buffers muscle acidity for longer, harder training sets.",
    "coq10": "Coenzyme that supports mitochondrial function, heart health, and cellular energy.",
    "curcumin": "Anti-inflammatory compound from turmeric that supports joint health.",
}

_RAW_CATALOG: list[dict[str, Any]] = [
    {"name": "Magnesium Glycinate", "category": "Sleep & Recovery", "use_case": "Deep sleep, muscle relaxation",
     "tier": "Green", "dose_typical": "200–400 mg", "evidence_quality": "Strong", "price_aed": 162,
     "subscription_discount_percent": 21, "discounted_price_aed": 127.98},
    {"name": "Rhodiola Rosea", "category": "Stress & Mood", "use_case": "Cortisol regulation, fatigue",
     "tier": "Green", "dose_typical": "200–400 mg", "evidence_quality": "Strong", "price_aed": 111,
     "subscription_discount_percent": 18, "discounted_price_aed": 91.02},
    {"name": "Ashwagandha", "category": "Stress & Mood", "use_case": "Adaptogen, stress resilience",
     "tier": "Green", "dose_typical": "300–600 mg", "evidence_quality": "Strong", "price_aed": 152,
     "subscription_discount_percent": 23, "discounted_price_aed": 117.04},
    {"name": "Tongkat Ali", "category": "Hormonal Support", "use_case": "Testosterone support",
     "tier": "Orange", "dose_typical": "200–400 mg", "evidence_quality": "Moderate", "price_aed": 74,
     "subscription_discount_percent": 17, "discounted_price_aed": 61.42},
    {"name": "Creatine Monohydrate", "category": "Hypertrophy", "use_case": "Muscle growth, performance",
     "tier": "Green", "dose_typical": "5 g", "evidence_quality": "Strong", "price_aed": 166,
     "subscription_discount_percent": 19, "discounted_price_aed": 134.46},
    {"name": "Vitamin D3", "category": "General Health", "use_case": "Immune support, bone health",
     "tier": "Green", "dose_typical": "2000–4000 IU", "evidence_quality": "Strong", "price_aed": 131,
     "subscription_discount_percent": 17, "discounted_price_aed": 108.73},
    {"name": "Omega-3 (EPA/DHA)", "category": "General Health", "use_case": "Heart & brain health",
     "tier": "Green", "dose_typical": "1000 mg", "evidence_quality": "Strong", "price_aed": 120,
     "subscription_discount_percent": 21, "discounted_price_aed": 94.8},
    {"name": "Zinc Picolinate", "category": "Hormonal Support", "use_case": "Hormonal balance",
     "tier": "Green", "dose_typical": "15–30 mg", "evidence_quality": "Strong", "price_aed": 80,
     "subscription_discount_percent": 19, "discounted_price_aed": 64.8},
    {"name": "Melatonin", "category": "Sleep & Recovery", "use_case": "Short-term sleep aid",
     "tier": "Orange", "dose_typical": "0.5–3 mg", "evidence_quality": "Moderate", "price_aed": 162,
     "subscription_discount_percent": 23, "discounted_price_aed": 124.74},
    {"name": "Berberine", "category": "Metabolism", "use_case": "Insulin sensitivity, metabolism",
     "tier": "Green", "dose_typical": "500 mg 2x/day", "evidence_quality": "Strong", "price_aed": 142,
     "subscription_discount_percent": 21, "discounted_price_aed": 112.18},
    {"name": "Probiotics", "category": "Gut Health", "use_case": "Digestive health",
     "tier": "Green", "dose_typical": "5–10 billion CFU", "evidence_quality": "Strong", "price_aed": 146,
     "subscription_discount_percent": 16, "discounted_price_aed": 122.64},
    {"name": "L-Citrulline", "category": "Endurance", "use_case": "Blood flow, pumps",
     "tier": "Green", "dose_typical": "6–8 g", "evidence_quality": "Strong", "price_aed": 134,
     "subscription_discount_percent": 18, "discounted_price_aed": 109.88},
    {"name": "Beta-Alanine", "category": "Endurance", "use_case": "Muscle endurance",
     "tier": "Green", "dose_typical": "3–6 g", "evidence_quality": "Strong", "price_aed": 134,
     "subscription_discount_percent": 23, "discounted_price_aed": 103.18},
    {"name": "CoQ10", "category": "Longevity", "use_case": "Mitochondrial function",
     "tier": "Green", "dose_typical": "100–200 mg", "evidence_quality": "Moderate", "price_aed": 147,
     "subscription_discount_percent": 16, "discounted_price_aed": 123.48},
    {"name": "Curcumin", "category": "Longevity", "use_case": "Inflammation control",
     "tier": "Green", "dose_typical": "500–1000 mg", "evidence_quality": "Moderate", "price_aed": 176,
     "subscription_discount_percent": 24, "discounted_price_aed": 133.76},
    {"name": "Bacopa Monnieri", "category": "Cognitive Support", "use_case": "Memory & learning",
     "tier": "Green", "dose_typical": "300–600 mg", "evidence_quality": "Strong", "price_aed": 159,
     "subscription_discount_percent": 23, "discounted_price_aed": 122.43},
    {"name": "Vitamin B12", "category": "General Health", "use_case": "Energy metabolism",
     "tier": "Green", "dose_typical": "500–1000 mcg", "evidence_quality": "Strong", "price_aed": 163,
     "subscription_discount_percent": 24, "discounted_price_aed": 123.88},
    {"name": "Iron (Ferrous Bisglycinate)", "category": "General Health", "use_case": "Anemia prevention",
     "tier": "Orange", "dose_typical": "18–27 mg", "evidence_quality": "Moderate", "price_aed": 83,
     "subscription_discount_percent": 19, "discounted_price_aed": 67.23},
    {"name": "Calcium Citrate", "category": "General Health", "use_case": "Bone support",
     "tier": "Green", "dose_typical": "500–1000 mg", "evidence_quality": "Strong", "price_aed": 62,
     "subscription_discount_percent": 16, "discounted_price_aed": 52.08},
    {"name": "Vitamin K2 (MK-7)", "category": "General Health", "use_case": "Calcium utilization",
     "tier": "Green", "dose_typical": "90–200 mcg", "evidence_quality": "Moderate", "price_aed": 81,
     "subscription_discount_percent": 18, "discounted_price_aed": 66.42},
]

SUPPLEMENT_CATEGORIES = [
    "General Health",
    "Sleep & Recovery",
    "Stress & Mood",
    "Hormonal Support",
    "Hypertrophy",
    "Endurance",
    "Metabolism",
    "Gut Health",
    "Longevity",
    "Cognitive Support",
]

FEATURED_SUPPLEMENTS = [
    "magnesium-glycinate",
    "vitamin-d3",
    "omega-3-epa-dha",
    "ashwagandha",
    "creatine-monohydrate",
    "probiotics",
]

GOAL_CATEGORIES: dict[str, list[str]] = {
    "general health": ["General Health"],
    "sleep": ["Sleep & Recovery"],
    "sleep & recovery": ["Sleep & Recovery"],
    "recovery": ["Sleep & Recovery", "Longevity"],
    "stress": ["Stress & Mood"],
    "mood": ["Stress & Mood"],
    "energy": ["General Health", "Stress & Mood"],
    "energy & vitality": ["General Health", "Stress & Mood"],
    "muscle": ["Hypertrophy", "Endurance"],
    "athletic performance": ["Hypertrophy", "Endurance"],
    "endurance": ["Endurance"],
    "weight loss": ["Metabolism"],
    "weight management": ["Metabolism"],
    "metabolic health": ["Metabolism"],
    "gut health": ["Gut Health"],
    "digestion": ["Gut Health"],
    "longevity": ["Longevity"],
    "heart health": ["General Health", "Longevity"],
    "brain health": ["Cognitive Support"],
    "focus": ["Cognitive Support"],
    "immune support": ["General Health", "Gut Health"],
    "hormonal balance": ["Hormonal Support"],
}

STARTER_STACKS: list[dict[str, Any]] = [
    {
        "id": "foundation-stack",
        "name": "Foundation Stack",
        "description": "Essential vitamins and minerals for daily health",
        "goal": "General Health",
        "supplement_ids": ["vitamin-d3", "omega-3-epa-dha", "magnesium-glycinate"],
    },
    {
        "id": "performance-stack",
        "name": "Performance Stack",
        "description": "Supplements for athletic performance and recovery",
        "goal": "Athletic Performance",
        "supplement_ids": ["creatine-monohydrate", "beta-alanine", "ashwagandha"],
    },
    {
        "id": "cognitive-stack",
        "name": "Brain Boost Stack",
        "description": "Support for focus, memory, and cognitive function",
        "goal": "Brain Health",
        "supplement_ids": ["omega-3-epa-dha", "bacopa-monnieri", "rhodiola-rosea"],
    },
    {
        "id": "sleep-stack",
        "name": "Deep Sleep Stack",
        "description": "Wind-down support for sleep onset and recovery",
        "goal": "Sleep & Recovery",
        "supplement_ids": ["magnesium-glycinate", "ashwagandha"],
    },
    {
        "id": "metabolic-stack",
        "name": "Metabolic Stack",
        "description": "Blood sugar and energy metabolism support",
        "goal": "Weight Management",
        "supplement_ids": ["berberine", "vitamin-b12", "probiotics"],
    },
]

_TIER_RANK = {"Green": 0, "Moderate": 1, "Orange": 2}
_EVIDENCE_RANK = {"Strong": 0, "Moderate": 1, "Emerging": 2}


def supplement_slug(name: str) -> str:
    # "/" separates words ("EPA/DHA"); other punctuation is dropped.
    slug = re.sub(r"[^\w\s-]", "", name.lower().replace("/", " "))
    slug = re.sub(r"\s+", "-", slug.strip())
    slug = re.sub(r"-{2,}", "-", slug)
    return slug.strip("-")


def supplement_image(name: str) -> str:
    slug = supplement_slug(name)
    if slug in SUPPLEMENT_IMAGE_MAP:
        return SUPPLEMENT_IMAGE_MAP[slug]
    head = slug.split("-")[0]
    for key, image in SUPPLEMENT_IMAGE_MAP.items():
        # Single-letter prefixes like the "l" in "l-citrulline" match too much.
        if key in slug or (len(head) > 2 and head in key):
            return image
    return DEFAULT_IMAGE


def _build_entry(item: dict[str, Any]) -> dict[str, Any]:
    slug = supplement_slug(item["name"])
    image = supplement_image(item["name"])
    description = SUPPLEMENT_DESCRIPTIONS.get(
        slug, f"{item['use_case']}. {item['evidence_quality']} evidence for effectiveness."
    )
    return {
        "id": slug,
        **item,
        "image_url": image,
        "form_image_url": image,
        "description": description,
        "benefits": [item["use_case"]],
        "warnings": ["Consult healthcare provider before use"] if item["tier"] == "Orange" else [],
        "interactions": [],
    }


SUPPLEMENTS: list[dict[str, Any]] = [_build_entry(item) for item in _RAW_CATALOG]
_BY_ID: dict[str, dict[str, Any]] = {item["id"]: item for item in SUPPLEMENTS}


def get_supplement(supplement_id: str) -> Optional[dict[str, Any]]:
    return _BY_ID.get(supplement_id)


def list_supplements(
    category: Optional[str] = None, tier: Optional[str] = None, query: Optional[str] = None
) -> list[dict[str, Any]]:
    rows = SUPPLEMENTS
    if category:
        rows = [s for s in rows if s["category"].lower() == category.strip().lower()]
    if tier:
        rows = [s for s in rows if s["tier"].lower() == tier.strip().lower()]
    if query and query.strip():
        needle = query.strip().lower()
        rows = [
            s
            for s in rows
            if needle in s["name"].lower() or needle in s["category"].lower() or needle in s["use_case"].lower()
        ]
    return list(rows)


def featured_supplements() -> list[dict[str, Any]]:
    return [_BY_ID[sid] for sid in FEATURED_SUPPLEMENTS if sid in _BY_ID]


def unit_price(
    supplement: dict[str, Any], subscription: bool, member_discount: Optional[float] = 0.0
) -> float:
    """Subscription lines always take the catalog subscription price.

    One-off lines take the catalog percentage capped at ``member_discount``
    (``None`` is uncapped, ``0`` is list price), so a member never pays more
    than a non-member for the same line.
    """
    if subscription:
        return float(supplement["discounted_price_aed"])
    percent = float(supplement["subscription_discount_percent"]) / 100.0
    if member_discount is not None:
        percent = min(percent, member_discount)
    if percent <= 0:
        return float(supplement["price_aed"])
    return round(float(supplement["price_aed"]) * (1.0 - percent), 2)


def stack_cost(supplement_ids: list[str], subscription: bool = False) -> float:
    total = 0.0
    for sid in supplement_ids:
        supplement = _BY_ID.get(sid)
        if not supplement:
            continue
        total += unit_price(supplement, subscription)
    return round(total, 2)


def _goal_categories(goals: list[str]) -> list[str]:
    categories: list[str] = []
    for goal in goals:
        normalized = " ".join(goal.strip().lower().replace("_", " ").split())
        for category in GOAL_CATEGORIES.get(normalized, []):
            if category not in categories:
                categories.append(category)
        for category in SUPPLEMENT_CATEGORIES:
            if category.lower() == normalized and category not in categories:
                categories.append(category)
    return categories


def recommend_supplements(goals: list[str], exclude_ids: Optional[set[str]] = None) -> dict[str, Any]:
    exclude = exclude_ids or set()
    categories = _goal_categories(goals)
    if not categories:
        return {
            "supplements": [s for s in featured_supplements() if s["id"] not in exclude],
            "stacks": [STARTER_STACKS[0]],
            "personalized_message": (
                "Complete your health goals in your profile to get tailored suggestions. "
                "Meanwhile, here are our most popular evidence-backed essentials."
            ),
            "matched_categories": [],
        }

    picked = [s for s in SUPPLEMENTS if s["category"] in categories and s["id"] not in exclude]
    picked.sort(
        key=lambda s: (
            categories.index(s["category"]),
            _TIER_RANK.get(s["tier"], 9),
            _EVIDENCE_RANK.get(s["evidence_quality"], 9),
            s["name"],
        )
    )
    goal_words = {g.strip().lower() for g in goals}
    stacks = [
        stack
        for stack in STARTER_STACKS
        if stack["goal"].lower() in goal_words
        or any(_BY_ID[sid]["category"] in categories for sid in stack["supplement_ids"] if sid in _BY_ID)
    ]
    readable = ", ".join(g.strip() for g in goals if g.strip())
    return {
        "supplements": picked,
        "stacks": stacks,
        "personalized_message": (
            f"Based on your goals ({readable}), these options have the strongest evidence. "
            "Start with one product at a time and review how you feel after two weeks."
        ),
        "matched_categories": categories,
    }
