"""
Local chunk source for the demo routes.

Splits text on a fixed boundary and paces the pieces with a cancellable
delay, so a browser sees it arrive the way a slow producer would send it.
"""

import random
from collections.abc import AsyncGenerator, Sequence

import structlog

from .cancellation import CancellationToken
from .models import Chunk, EventKind, Granularity

logger = structlog.get_logger()

_SEPARATORS = {
    Granularity.LINE: "\n",
    Granularity.WORD: " ",
}


def split_text(text: str | Sequence[str], granularity: Granularity) -> list[str]:
    """
    Split ``text`` into chunk texts for ``granularity``.

    Lines and words get their separator re-appended. An empty trailing piece
    (text ending with the separator) is dropped, so joined line chunks equal
    the original text whenever it ends with a newline.
    """
    if granularity is Granularity.FIXED_TOKEN_LIST:
        if isinstance(text, str):
            raise TypeError("fixed-token-list granularity expects a token sequence")
        return list(text)

    if not isinstance(text, str):
        raise TypeError(f"{granularity.value} granularity expects a string")
    if not text:
        return []

    separator = _SEPARATORS[granularity]
    pieces = text.split(separator)
    if len(pieces) > 1 and pieces[-1] == "":
        pieces.pop()
    return [piece + separator for piece in pieces]


class TextChunker:
    """Produces delayed chunks from local text, observing a cancellation token."""

    def __init__(
        self,
        cancellation: CancellationToken,
        realistic_bounds_ms: tuple[int, int] = (50, 200),
        rng: random.Random | None = None,
    ):
        """
        Args:
            cancellation: Session token checked during every delay
            realistic_bounds_ms: Inclusive range for "realistic" random delays
            rng: Random source (seedable for tests)
        """
        low, high = realistic_bounds_ms
        if low < 0 or high < low:
            raise ValueError(f"Invalid realistic delay bounds: {realistic_bounds_ms}")
        self.cancellation = cancellation
        self.realistic_bounds_ms = (low, high)
        self._rng = rng or random.Random()

    def next_delay_ms(self, delay_ms: int | None) -> int:
        """Fixed delay, or a random one within bounds when ``delay_ms`` is None."""
        if delay_ms is None:
            return self._rng.randint(*self.realistic_bounds_ms)
        return max(delay_ms, 0)

    async def chunk(
        self,
        text: str | Sequence[str],
        granularity: Granularity,
        delay_ms: int | None,
        kind: EventKind | None = None,
    ) -> AsyncGenerator[Chunk, None]:
        """
        Yield ``text`` piece by piece with a delay between successive chunks.

        Args:
            text: Source text, or the tokens for fixed-token-list granularity
            granularity: Split boundary
            delay_ms: Delay between chunks; None selects a realistic random delay
            kind: Event kind attached to every chunk

        Yields:
            Chunk: One per piece, in source order
        """
        pieces = split_text(text, granularity)

        for index, piece in enumerate(pieces):
            if index > 0:
                seconds = self.next_delay_ms(delay_ms) / 1000
                if await self.cancellation.sleep(seconds):
                    logger.debug(
                        "Chunker stopped by cancellation",
                        emitted=index,
                        remaining=len(pieces) - index,
                    )
                    return
            elif self.cancellation.cancelled:
                return
            yield Chunk(text=piece, kind=kind)
