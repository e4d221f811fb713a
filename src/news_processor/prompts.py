"""Prompt assembly for persona-driven processing."""

from news_processor.core import Persona, ProcessedItem

JSON_ONLY = "Respond only with JSON. Do not include ```json or anything other than json."

ITEM_SCHEMA = {
    "name": "post_item",
    "description": "an object representing a post",
    "schema": {
        "type": "object",
        "properties": {
            "id": {"type": "string"},
            "title": {"type": "string"},
            "overview": {"type": "array", "items": {"type": "string"}},
            "summary": {"type": "string"},
            "commentSummary": {"type": "string"},
            "relevanceToCriteria": {"type": "string"},
            "isRelevant": {"type": "boolean"},
        },
        "required": ["id", "title", "overview", "summary", "relevanceToCriteria", "isRelevant"],
        "additionalProperties": False,
    },
}

DIGEST_SCHEMA = {
    "name": "summary",
    "description": "a summary of multiple news items",
    "schema": {
        "type": "object",
        "properties": {
            "overallSummary": {"type": "string"},
            "keyDevelopments": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "text": {"type": "string"},
                        "itemID": {"type": "string"},
                    },
                    "required": ["text", "itemID"],
                    "additionalProperties": False,
                },
            },
            "emergingTrends": {"type": "array", "items": {"type": "string"}},
            "technicalHighlight": {"type": "string"},
        },
        "required": ["overallSummary", "keyDevelopments", "emergingTrends", "technicalHighlight"],
        "additionalProperties": False,
    },
}

_DEPTH_INSTRUCTIONS = {
    "basic": (
        "Keep technical details accessible to a general audience. Avoid jargon and "
        "explain technical concepts in simple terms."
    ),
    "advanced": (
        "Provide in-depth technical analysis with detailed explanations of implementation "
        "details, algorithms, and technical implications."
    ),
    "moderate": (
        "Provide technical analysis appropriate for a knowledgeable audience, balancing "
        "accessibility with technical depth."
    ),
}

_STYLE_INSTRUCTIONS = {
    "formal": "Write in a formal, professional tone suitable for academic or business contexts.",
    "technical": "Write in a precise, technical style focusing on accuracy and detailed specifications.",
    "conversational": "Write in a conversational, engaging style while maintaining technical accuracy.",
}


def _bullets(lines: tuple[str, ...]) -> str:
    return "\n".join(f"* {line}" for line in lines)


def technical_depth_instruction(persona: Persona) -> str:
    return _DEPTH_INSTRUCTIONS.get(persona.technical_depth, _DEPTH_INSTRUCTIONS["moderate"])


def writing_style_instruction(persona: Persona) -> str:
    return _STYLE_INSTRUCTIONS.get(persona.writing_style, _STYLE_INSTRUCTIONS["conversational"])


def compose_entry_prompt(persona: Persona) -> str:
    """System prompt for the per-entry relevance and summary call."""
    sections = [persona.persona_identity or f"You are an expert analyst covering {persona.topic or persona.name}."]

    if persona.base_prompt_task:
        sections.append(persona.base_prompt_task)

    if persona.focus_areas:
        sections.append("Focus areas:\n" + _bullets(persona.focus_areas))

    if persona.relevance_criteria:
        sections.append("Relevant items include:\n" + _bullets(persona.relevance_criteria))

    if persona.exclusion_criteria:
        sections.append("An item is not relevant if it contains:\n" + _bullets(persona.exclusion_criteria))

    fields = [
        "* id: the ID of the item, copied exactly from the input",
        "* title: the title of the item",
        f"* overview: {persona.overview_bullet_points} short bullet points capturing the key facts",
        f"* summary: a detailed summary of {persona.summary_paragraphs} "
        f"({persona.summary_word_count})",
    ]
    if persona.include_comment_summary:
        fields.append(
            f"* commentSummary: {persona.comment_paragraphs} capturing community sentiment "
            "and notable discussion"
        )
    if persona.include_image_analysis:
        fields.append("  Use the ImageDescription field where it adds context to the summary.")
    fields.extend(
        [
            "* relevanceToCriteria: why this item matters against the criteria above; "
            'avoid generic statements like "this is important"',
            "* isRelevant: a final boolean relevance judgement",
        ]
    )
    sections.append("For each item, provide a JSON object with these fields:\n" + "\n".join(fields))

    sections.append(technical_depth_instruction(persona) + " " + writing_style_instruction(persona))
    sections.append(JSON_ONLY)

    return "\n\n".join(sections)


def compose_digest_prompt(persona: Persona) -> str:
    """System prompt for the cross-item digest call."""
    sections = [
        persona.persona_identity or f"You are an analyst covering {persona.topic or persona.name}.",
        persona.summary_prompt_task
        or "Analyze the following news items and create an overview of key trends and developments.",
    ]

    if persona.summary_analysis:
        sections.append("Your analysis should focus on:\n" + _bullets(persona.summary_analysis))

    sections.append(
        "Generate a structured analysis as a JSON object with these fields:\n"
        "* overallSummary: a comprehensive summary that synthesizes the major developments\n"
        "* keyDevelopments: an array of objects ordered by significance, each with a text "
        "field and an itemID field matching the ID of an item in the input\n"
        "* emergingTrends: trends visible across multiple items\n"
        "* technicalHighlight: the single most significant development with explanation, "
        "as plain text"
    )
    sections.append(JSON_ONLY)

    return "\n\n".join(sections)


def compose_digest_input(items: list[ProcessedItem]) -> list[str]:
    return [item.to_summary_string() for item in items]


IMAGE_SYSTEM_PROMPT = (
    "You describe images attached to news posts. Be factual and concise. "
    "Transcribe any visible text, numbers, charts or benchmark tables."
)


def compose_image_prompt(persona: Persona, title: str) -> str:
    """User prompt for describing the first image of an entry."""
    topic = persona.topic or persona.name
    return (
        f"This image is attached to a post titled \"{title}\" in a feed about {topic}. "
        "Describe what the image shows and any details relevant to that topic."
    )


def web_summary_system_prompt(persona: Persona) -> str:
    return (
        f"You are a concise summarizer for {persona.name}. Provide brief, informative summaries "
        "of web content. Keep summaries to 300-500 words and focus on key technical insights."
    )


def web_summary_user_prompt(title: str, url: str, content: str) -> str:
    return (
        "Please provide a concise summary of the following article content "
        f"(aim for 300-500 words):\n\n{content}\n\nTitle: {title}\n\nURL: {url}"
    )
