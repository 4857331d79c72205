import unittest

from src.wiki_import.application.aggregator import LanguageAggregator
from src.wiki_import.application.resolver import SourceResolver
from src.wiki_import.domain.errors import PageNotFoundError
from tests.utils.fake_wiki import FakeWiki, hit, link, make_page


class SourceResolverTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.wiki = FakeWiki()
        self.resolver = SourceResolver(self.wiki)

    async def test_preferred_language_hit(self):
        self.wiki.add_page(make_page("en", 1, "Example Topic", extract="English text."))
        resolved = await self.resolver.resolve(None, "EN", title="Example Topic", fallback_langs=("de",))
        self.assertEqual(resolved.lang, "en")
        self.assertFalse(resolved.fallback_used)

    async def test_falls_back_to_next_language(self):
        self.wiki.add_page(make_page("de", 2, "Example Topic", extract="Deutscher Text."))

        resolved = await self.resolver.resolve(None, "en", title="Example Topic", fallback_langs=("en", "de"))

        self.assertEqual(resolved.lang, "de")
        self.assertEqual(resolved.page.page_id, 2)
        self.assertTrue(resolved.fallback_used)
        fetched_langs = [call[1] for call in self.wiki.calls if call[0] == "fetch_page"]
        self.assertEqual(fetched_langs, ["en", "de"])

    async def test_fallback_uses_top_search_hit(self):
        self.wiki.add_page(make_page("fr", 9, "Trabant (automobile)", extract="Texte."))
        self.wiki.search_hits[("fr", "Trabant")] = [hit("fr", 9, "Trabant (automobile)")]

        resolved = await self.resolver.resolve(None, "en", title="Trabant", fallback_langs=("fr",))

        self.assertEqual(resolved.page.title, "Trabant (automobile)")
        self.assertIn(("search", "fr", "Trabant"), self.wiki.calls)

    async def test_page_id_has_no_language_fallback(self):
        self.wiki.add_page(make_page("de", 2, "Example Topic"))
        with self.assertRaises(PageNotFoundError):
            await self.resolver.resolve(None, "en", page_id=2, fallback_langs=("de",))
        self.assertEqual(len(self.wiki.calls), 1)

    async def test_nothing_anywhere(self):
        with self.assertRaises(PageNotFoundError) as ctx:
            await self.resolver.resolve(None, "en", title="Nowhere", fallback_langs=("de",))
        self.assertEqual(ctx.exception.status_code, 404)


class LanguageAggregatorTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.wiki = FakeWiki()
        self.base = self.wiki.add_page(make_page("en", 1, "Trabant", extract="The Trabant is a car."))
        self.wiki.add_page(make_page("de", 10, "Trabant", extract="Der Trabant."))
        self.wiki.add_page(make_page("de", 11, "Trabant 601", extract="Der 601."))
        self.wiki.add_page(make_page("de", 13, "Trabant P50", extract="Der P50."))
        self.wiki.langlinks[("en", 1)] = [link("de", "Trabant"), link("fr", "Trabant"), link("ja", "トラバント")]
        self.wiki.search_hits[("de", "Trabant")] = [
            hit("de", 10, "Trabant"),
            hit("de", 11, "Trabant 601"),
            hit("de", 12, "Wartburg"),
            hit("de", 13, "Trabant P50"),
        ]
        self.aggregator = LanguageAggregator(self.wiki)

    async def test_language_links_and_verification_sources(self):
        sources = await self.aggregator.aggregate(
            None, self.base, target_lang="de", max_languages=2, max_verification_sources=3
        )

        self.assertEqual(
            [(s.lang, s.page_id) for s in sources],
            [("en", 1), ("de", 10), ("de", 11), ("de", 13)],
        )
        self.assertNotIn(("fetch_page", "ja", "トラバント"), self.wiki.calls)

    async def test_verification_respects_source_cap(self):
        sources = await self.aggregator.aggregate(
            None, self.base, target_lang="de", max_languages=2, max_verification_sources=1
        )
        self.assertEqual([s.page_id for s in sources], [1, 10, 11])

    async def test_failures_are_swallowed(self):
        self.wiki.fail = {"fetch_lang_links", "search"}
        sources = await self.aggregator.aggregate(
            None, self.base, target_lang="de", max_languages=5, max_verification_sources=3
        )
        self.assertEqual(sources, [self.base])

    async def test_failed_language_fetch_is_skipped(self):
        self.wiki.fail = {("fetch_page", "de", "Trabant")}
        sources = await self.aggregator.aggregate(
            None, self.base, target_lang="", max_languages=5, max_verification_sources=3
        )
        self.assertEqual([s.lang for s in sources], ["en"])


if __name__ == "__main__":
    unittest.main()
