from llama_index.core.prompts import PromptTemplate

SYNTHESIS_RULES = """You are a careful technical writer building an internal worldbuilding wiki.
Rules:
- Write the article in {target_lang}.
- Output Markdown only: headings (##), paragraphs and lists. No wiki markup, no HTML.
- Start with a short summary paragraph, then organize the content into sections.
- Keep a neutral tone and use only the provided sources. Do not invent facts.
- If sources conflict or leave gaps, say so explicitly.
- End with a "## Sources" section listing each source URL with its language code."""

SYNTHESIS_PROMPT = PromptTemplate(
    """{rules}

Sources ({source_count}):
{source_list}

{source_blocks}
"""
)

SYNTHESIS_RETRY_NOTE = """Your previous answer was rejected because it was too short or still contained wiki markup.
Write a complete Markdown article of at least {min_chars} characters with ## section headings."""

MEDIA_ANALYSIS_PROMPT = PromptTemplate(
    """You are analyzing media files from a Wikipedia article to determine their relevance for a worldbuilding reference database.

SUBJECT: "{page_title}"
ENTITY TYPE: {entity_type}

AVAILABLE MEDIA FILES:
{media_list}

ORIGINAL WIKIPEDIA IMAGE PLACEMENTS:
{placements}

WIKITEXT EXCERPT (for context):
{wikitext_excerpt}

TASK: For each media file decide whether it directly shows or describes "{page_title}",
where it should be placed and how important it is (priority 1 = most important, 5 = least).

PLACEMENT RULES:
- "infobox": main representative image, audio clips, short videos demonstrating the subject
- "inline": images that belong near a specific text section (diagrams, historical photos, technical details)
- "gallery": additional reference images useful for artists and modelers
- "exclude": flags, emblems, political icons, UI elements, wiki icons, operator maps, unrelated portraits, generic symbols

RESPOND WITH VALID JSON ONLY:
{"media": [{"title": "exact filename from list", "relevant": true, "reason": "brief explanation", "placement": "infobox", "suggestedCaption": "Caption", "priority": 1, "inlineSection": "optional section name"}]}
"""
)
