import unittest

from src.wiki_import.domain.wikitext import (
    INTRO_SECTION,
    clean_caption,
    extract_wikitext_image_placements,
    find_matching_braces,
)

WIKITEXT = """{{Infobox automobile
| name = Trabant
| image = Trabant 601 front.jpg
| caption = A '''Trabant''' 601
| manufacturer = [[VEB Sachsenring]]
}}
'''Trabant''' is a car.[[File:Flag of East Germany.svg|20px]]

== History ==
[[File:Trabant factory.jpg|thumb|left|250px|The [[Zwickau]] factory]]
Production began in 1957.

=== Models ===
[[Image:Trabant P50.jpg|thumb|upright=1.2|alt=Side view|P50 model]]
"""


class WikitextPlacementTests(unittest.TestCase):
    def setUp(self):
        self.placements = extract_wikitext_image_placements(WIKITEXT)
        self.by_name = {p.filename: p for p in self.placements}

    def test_all_files_found_in_document_order(self):
        self.assertEqual(
            [p.filename for p in self.placements],
            ["Trabant 601 front.jpg", "Flag of East Germany.svg", "Trabant factory.jpg", "Trabant P50.jpg"],
        )

    def test_infobox_parameter_becomes_infobox_placement(self):
        infobox = self.by_name["Trabant 601 front.jpg"]
        self.assertTrue(infobox.is_infobox)
        self.assertEqual(infobox.section, INTRO_SECTION)
        self.assertEqual(infobox.caption, "A Trabant 601")

    def test_intro_link_outside_infobox(self):
        flag = self.by_name["Flag of East Germany.svg"]
        self.assertFalse(flag.is_infobox)
        self.assertEqual(flag.section, INTRO_SECTION)
        self.assertEqual(flag.size, "20px")
        self.assertIsNone(flag.caption)

    def test_section_link_options(self):
        factory = self.by_name["Trabant factory.jpg"]
        self.assertEqual(factory.section, "History")
        self.assertEqual(factory.alignment, "left")
        self.assertEqual(factory.size, "250px")
        self.assertEqual(factory.caption, "The Zwickau factory")

    def test_nested_section_and_keyword_options_skipped(self):
        p50 = self.by_name["Trabant P50.jpg"]
        self.assertEqual(p50.section, "Models")
        self.assertEqual(p50.caption, "P50 model")

    def test_file_link_inside_infobox_is_not_duplicated(self):
        wikitext = "{{Infobox ship\n| image = [[File:Ship.jpg|250px|The ship]]\n}}\nText."
        placements = extract_wikitext_image_placements(wikitext)
        self.assertEqual(len(placements), 1)
        self.assertTrue(placements[0].is_infobox)
        self.assertEqual(placements[0].caption, "The ship")

    def test_empty_wikitext(self):
        self.assertEqual(extract_wikitext_image_placements(""), [])


class WikitextHelperTests(unittest.TestCase):
    def test_find_matching_braces_handles_nesting(self):
        text = "{{a|{{b}}|c}} tail"
        self.assertEqual(text[: find_matching_braces(text, 0) + 1], "{{a|{{b}}|c}}")

    def test_clean_caption_strips_links_and_emphasis(self):
        self.assertEqual(clean_caption("The [[Zwickau|town]] ''plant''"), "The town plant")


if __name__ == "__main__":
    unittest.main()
