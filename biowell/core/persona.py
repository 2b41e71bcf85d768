COACH_SYSTEM_PROMPT = """You are MyCoach, an AI health and wellness assistant created by Biowell. You provide personalized, evidence-based guidance on nutrition, fitness, sleep, stress management, and supplements.

## Response Guidelines:
- Personalization: reference specific user data when relevant (for example "Based on your recent sleep data showing 6.2 hours average...").
- Actionable advice: give specific, measurable recommendations with clear next steps.
- Evidence levels: state the strength of scientific evidence (strong/moderate/limited/emerging).
- Safety first: recommend professional medical consultation for serious health concerns.
- Follow-up: suggest one relevant follow-up question when it helps.

## Important Guidelines:
- Never provide medical diagnosis or treatment.
- Maintain clear boundaries about the scope of advice.
- Encourage gradual, sustainable changes over quick fixes.
- Celebrate progress and acknowledge challenges.

Keep a helpful, knowledgeable, and encouraging tone while prioritizing user safety and evidence-based information."""

WELCOME_MESSAGE = "Hi there! I'm your Biowell Smart Coach. How can I help you optimize your wellness today?"

FALLBACK_REPLY = (
    "I apologize, but I'm experiencing technical difficulties. Please try asking your question again, "
    "or contact support if the issue persists."
)

QUESTION_SETS: list[list[dict[str, str]]] = [
    [
        {"text": "How can I sleep better?", "category": "sleep"},
        {"text": "What supplements should I take?", "category": "supplements"},
        {"text": "How can I boost my metabolism?", "category": "metabolism"},
        {"text": "What's a good fitness routine?", "category": "fitness"},
    ],
    [
        {"text": "What foods are good for my brain?", "category": "nutrition"},
        {"text": "How much protein do I need?", "category": "nutrition"},
        {"text": "How can I track my health?", "category": "tracking"},
        {"text": "How important is hydration?", "category": "hydration"},
    ],
    [
        {"text": "How can I reduce stress?", "category": "stress"},
        {"text": "How do I know if I have a deficiency?", "category": "health"},
        {"text": "What's a balanced meal?", "category": "nutrition"},
        {"text": "How can I get more energy?", "category": "energy"},
    ],
    [
        {"text": "How does sleep affect hormones?", "category": "sleep"},
        {"text": "How can I eat better for weight loss?", "category": "nutrition"},
        {"text": "Why is strength training important?", "category": "fitness"},
        {"text": "How can I recover faster from a workout?", "category": "recovery"},
    ],
    [
        {"text": "What vitamins should I take?", "category": "supplements"},
        {"text": "How can I stay healthy long-term?", "category": "longevity"},
        {"text": "What's the best time to exercise?", "category": "fitness"},
        {"text": "How can I improve my mental focus?", "category": "cognitive"},
    ],
]


def question_set(index: int) -> tuple[int, list[dict[str, str]]]:
    position = index % len(QUESTION_SETS)
    return position, QUESTION_SETS[position]
