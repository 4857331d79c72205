"""Keyed working set of relevance verdicts for one import.

Every file is stored once under its ``relevance_key`` (lower case, namespace
prefix and extension dropped). Verdicts arrive from several sources, ranked
by ``SOURCE_PRECEDENCE``:

    wikitext > backstop > llm > heuristic > fill

Merge semantics:

* a verdict replaces the stored one when its source ranks at least as high;
* a lower-ranked verdict may only promote an entry that is not relevant yet,
  it never rewrites or demotes a relevant one;
* the first insertion fixes an entry's discovery order, merges never move it.
"""

from dataclasses import dataclass, replace
from typing import Iterator

from src.media_relevance.domain.rules import EXCLUDED_PRIORITY, SOURCE_PRECEDENCE
from src.wiki_import.domain.models import MediaRelevanceResult, Placement
from src.wiki_import.domain.rules import relevance_key


@dataclass
class RelevanceEntry:
    key: str
    order: int
    source: str
    result: MediaRelevanceResult

    @property
    def relevant(self) -> bool:
        return self.result.relevant and self.result.placement != "exclude"

    @property
    def placement(self) -> Placement:
        return self.result.placement


class MediaRelevanceStore:
    def __init__(self) -> None:
        self._entries: dict[str, RelevanceEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, title: str) -> bool:
        return relevance_key(title) in self._entries

    def __iter__(self) -> Iterator[RelevanceEntry]:
        return iter(sorted(self._entries.values(), key=lambda entry: entry.order))

    def get(self, title: str) -> RelevanceEntry | None:
        return self._entries.get(relevance_key(title))

    def seed(self, title: str) -> RelevanceEntry:
        """Register a file as excluded until some source says otherwise."""
        key = relevance_key(title)
        entry = self._entries.get(key)
        if entry is None:
            entry = RelevanceEntry(
                key=key,
                order=len(self._entries),
                source="fill",
                result=MediaRelevanceResult(
                    title=title,
                    relevant=False,
                    placement="exclude",
                    priority=EXCLUDED_PRIORITY,
                    reason="unclassified",
                ),
            )
            self._entries[key] = entry
        return entry

    def apply(self, result: MediaRelevanceResult, source: str) -> bool:
        """Merge ``result`` from ``source``; return whether the stored verdict changed."""
        if source not in SOURCE_PRECEDENCE:
            raise ValueError(f"Unknown relevance source: {source}")

        key = relevance_key(result.title)
        normalized = result
        if result.placement == "exclude" and result.relevant:
            normalized = replace(result, relevant=False)

        entry = self._entries.get(key)
        if entry is None:
            self._entries[key] = RelevanceEntry(key=key, order=len(self._entries), source=source, result=normalized)
            return True

        if SOURCE_PRECEDENCE[source] < SOURCE_PRECEDENCE[entry.source] and (entry.relevant or not normalized.relevant):
            return False

        # Keep the title spelling of the first sighting.
        entry.result = replace(normalized, title=entry.result.title)
        entry.source = source
        return True

    def count(self, placement: Placement) -> int:
        return sum(1 for entry in self._entries.values() if entry.relevant and entry.placement == placement)

    def results(self) -> list[MediaRelevanceResult]:
        """All verdicts, ascending by priority, ties in discovery order."""
        ordered = sorted(self._entries.values(), key=lambda entry: (entry.result.priority, entry.order))
        return [entry.result for entry in ordered]
