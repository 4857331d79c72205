from dataclasses import dataclass
from typing import Sequence

from src.wiki_import.domain.models import MediaInfo, MediaRelevanceResult
from src.wiki_import.domain.rules import relevance_key


@dataclass(frozen=True)
class InfoboxSelection:
    images: tuple[MediaRelevanceResult, ...] = ()
    audio: tuple[MediaRelevanceResult, ...] = ()
    video: tuple[MediaRelevanceResult, ...] = ()

    @property
    def main_image(self) -> MediaRelevanceResult | None:
        return self.images[0] if self.images else None


def categorize_infobox_media(
    results: Sequence[MediaRelevanceResult],
    infos: Sequence[MediaInfo],
) -> InfoboxSelection:
    """Split relevant media into infobox images (best first) and the audio/video side lists."""
    by_key = {relevance_key(info.title): info for info in infos}
    relevant = sorted(
        (result for result in results if result.relevant and result.placement != "exclude"),
        key=lambda result: result.priority,
    )

    images: list[MediaRelevanceResult] = []
    audio: list[MediaRelevanceResult] = []
    video: list[MediaRelevanceResult] = []
    for result in relevant:
        info = by_key.get(relevance_key(result.title))
        if info is None:
            continue
        if info.is_audio:
            audio.append(result)
        elif info.is_video:
            video.append(result)
        elif info.is_image and result.placement == "infobox":
            images.append(result)

    return InfoboxSelection(images=tuple(images), audio=tuple(audio), video=tuple(video))
