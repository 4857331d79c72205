from src.wiki_import.domain.models import MediaInfo, SourcePage, WikiLangLink, WikiSearchHit
from src.wiki_import.domain.rules import build_canonical_url, media_title_key, strip_file_prefix


def make_page(lang, page_id, title, extract="", wikitext="", page_image=None):
    return SourcePage(
        lang=lang,
        page_id=page_id,
        title=title,
        url=build_canonical_url(title, lang),
        extract=extract,
        wikitext=wikitext,
        page_image_title=page_image,
    )


def make_image(title, *, width=800, height=600, size=50_000, mime="image/jpeg", origin="commons"):
    return MediaInfo(
        title=strip_file_prefix(title),
        url=f"https://upload.invalid/{strip_file_prefix(title).replace(' ', '_')}",
        mime=mime,
        width=width,
        height=height,
        size=size,
        author="Someone",
        license_id="CC BY-SA 4.0",
        license_url="https://creativecommons.org/licenses/by-sa/4.0",
        origin=origin,
    )


class FakeWiki:
    """In-memory stand-in for MediaWikiClient."""

    def __init__(self):
        self.pages = {}
        self.media = {}
        self.langlinks = {}
        self.search_hits = {}
        self.commons_hits = {}
        self.infos = {}
        self.downloads = {}
        self.fail = set()
        self.calls = []

    def add_page(self, page, media=()):
        self.pages[(page.lang, page.title.lower())] = page
        self.pages[(page.lang, page.page_id)] = page
        self.media[(page.lang, page.page_id)] = list(media)
        return page

    def add_info(self, info, origin="commons", data=b"bytes"):
        self.infos[(origin, media_title_key(info.title))] = info
        self.downloads.setdefault(info.url, data)
        return info

    def _check(self, operation, *key):
        self.calls.append((operation, *key))
        if operation in self.fail or (operation, *key) in self.fail:
            raise RuntimeError(f"{operation} failed")

    async def fetch_page(self, session, lang, *, page_id=None, title=None):
        self._check("fetch_page", lang, page_id or title)
        if page_id:
            return self.pages.get((lang, int(page_id)))
        return self.pages.get((lang, (title or "").lower()))

    async def fetch_page_media(self, session, lang, page_id):
        self._check("fetch_page_media", lang, page_id)
        return list(self.media.get((lang, page_id), []))

    async def fetch_lang_links(self, session, lang, page_id):
        self._check("fetch_lang_links", lang, page_id)
        return list(self.langlinks.get((lang, page_id), []))

    async def search(self, session, lang, query, limit=10, namespace=0):
        self._check("search", lang, query)
        return list(self.search_hits.get((lang, query), []))[:limit]

    async def search_media(self, session, query, limit=20):
        self._check("search_media", query)
        return list(self.commons_hits.get(query, []))[:limit]

    async def fetch_image_info(self, session, lang, title):
        self._check("fetch_image_info", lang, strip_file_prefix(title))
        return self.infos.get((lang, media_title_key(title)))

    async def download(self, session, url, max_bytes=None):
        self._check("download", url)
        data = self.downloads.get(url)
        if isinstance(data, Exception):
            raise data
        if data is None:
            raise RuntimeError(f"no data for {url}")
        return data


def link(lang, title):
    return WikiLangLink(lang=lang, title=title)


def hit(lang, page_id, title):
    return WikiSearchHit(lang=lang, page_id=page_id, title=title, snippet="", url=build_canonical_url(title, lang))


class FakeGenerator:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []

    async def generate(self, prompt):
        self.prompts.append(prompt)
        if not self.responses:
            return ""
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeAssetStore:
    def __init__(self):
        self.files = {}

    def write(self, workspace_id, title, data, now_ms=None):
        key = f"{workspace_id}/{len(self.files)}-{title}"
        self.files[key] = data
        return key

    def read(self, storage_key):
        return self.files[storage_key]

    def delete(self, storage_key):
        self.files.pop(storage_key, None)
