from src.wiki_import.domain.rules import media_title_key

# Site chrome and maintenance artwork that never illustrates a topic.
MEDIA_DENYLIST_KEYWORDS: tuple[str, ...] = (
    "logo",
    "icon",
    "wikimedia",
    "wikipedia",
    "wiktionary",
    "wikiquote",
    "wikisource",
    "wikibooks",
    "wikinews",
    "wikiversity",
    "wikidata",
    "commons-logo",
    "symbol support vote",
    "symbol question",
    "symbol book class",
    "edit-clear",
    "ambox",
    "question book",
    "padlock",
    "disambig",
    "red pog",
    "blue pencil",
    "folder hexagonal",
    "crystal clear",
    "nuvola",
    "gnome-",
    "semi-protection",
    "featured article",
    "good article",
    "lock-",
)

TECHNICAL_IMAGE_KEYWORDS: tuple[str, ...] = (
    "diagram",
    "schematic",
    "blueprint",
    "cross-section",
    "cross section",
    "cutaway",
    "elevation",
    "floor plan",
    "plan view",
    "side view",
    "drawing",
    "layout",
    "profile",
    "3-view",
    "three-view",
    "technical",
)

INFOBOX_PRIORITY = 1
HEURISTIC_GALLERY_PRIORITY = 2
INLINE_PRIORITY = 3
TECHNICAL_FILL_PRIORITY = 4
SIZE_FILL_PRIORITY = 5
DEFAULT_LLM_PRIORITY = 5
EXCLUDED_PRIORITY = 9
HEURISTIC_GALLERY_COUNT = 4

WIKITEXT_EXCERPT_CHARS = 2000

# Higher rank wins when two sources disagree about the same file.
SOURCE_PRECEDENCE: dict[str, int] = {
    "fill": 0,
    "heuristic": 1,
    "llm": 2,
    "backstop": 3,
    "wikitext": 4,
}


def is_denylisted(title: str) -> bool:
    key = media_title_key(title)
    return any(keyword in key for keyword in MEDIA_DENYLIST_KEYWORDS)


def is_technical_image(title: str) -> bool:
    key = media_title_key(title)
    return any(keyword in key for keyword in TECHNICAL_IMAGE_KEYWORDS)


def matches_topic_keywords(title: str, keywords: tuple[str, ...]) -> bool:
    if not keywords:
        return True
    key = media_title_key(title)
    return any(keyword in key for keyword in keywords)
