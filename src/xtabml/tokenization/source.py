"""lxml-backed token source for XtabML parsing.

This module feeds raw markup into lxml's incremental parser and turns the
parser-target callbacks into a flat stream of :class:`XMLEvent` values.
Markup well-formedness, entity decoding and character-encoding handling are
all left to lxml; any failure it reports surfaces as :class:`TokenError`.
"""

from collections import deque
from typing import IO, Any, Deque, Dict, Iterable, Iterator, List, Optional, Union

from lxml import etree

from xtabml.shared import SourceConfig, SourceIOError, TokenError, get_logger
from xtabml.tokenization.events import EventType, XMLEvent, local_name

Chunk = Union[str, bytes]


class _EventCollector:
    """Parser target that records lxml callbacks as structural events."""

    def __init__(self) -> None:
        self.events: Deque[XMLEvent] = deque()
        self._text: List[str] = []

    def start(self, tag: str, attrib: Dict[str, str]) -> None:
        self._flush_text()
        attributes = {local_name(key): value for key, value in attrib.items()}
        self.events.append(XMLEvent(EventType.START, local_name(tag), attributes))

    def end(self, tag: str) -> None:
        self._flush_text()
        self.events.append(XMLEvent(EventType.END, local_name(tag)))

    def data(self, data: str) -> None:
        # lxml splits runs at entity references; coalesced in _flush_text
        self._text.append(data)

    def close(self) -> None:
        self._flush_text()

    def _flush_text(self) -> None:
        if self._text:
            self.events.append(XMLEvent.characters("".join(self._text)))
            self._text.clear()


def _token_error(exc: etree.XMLSyntaxError) -> TokenError:
    position = getattr(exc, "position", None) or (None, None)
    message = getattr(exc, "msg", None) or str(exc)
    return TokenError(f"Malformed markup: {message}", position[0], position[1])


class LxmlEventSource:
    """Incremental token source built on ``lxml.etree.XMLParser``.

    Examples:
        >>> source = LxmlEventSource()
        >>> [event.type.name for event in source.events(['<xtab/>'])]
        ['START', 'END']
    """

    def __init__(
        self,
        config: Optional[SourceConfig] = None,
        correlation_id: Optional[str] = None
    ) -> None:
        self.config = config or SourceConfig()
        self.logger = get_logger(__name__, correlation_id, "event_source")

    def _make_parser(self, target: _EventCollector) -> etree.XMLParser:
        return etree.XMLParser(
            target=target,
            resolve_entities=False,
            no_network=True,
            load_dtd=False,
            huge_tree=self.config.huge_tree,
            remove_comments=True,
            remove_pis=True,
        )

    def events(self, chunks: Iterable[Chunk]) -> Iterator[XMLEvent]:
        """Yield structural events for the markup split across ``chunks``.

        Args:
            chunks: Markup fragments, all ``str`` or all ``bytes``

        Yields:
            XMLEvent values in document order

        Raises:
            TokenError: If lxml rejects the markup
        """
        collector = _EventCollector()
        parser = self._make_parser(collector)
        fed_length = 0

        for chunk in chunks:
            # Leading whitespace-only input is treated as absent
            if not chunk or (fed_length == 0 and not chunk.strip()):
                continue
            try:
                parser.feed(chunk)
            except etree.XMLSyntaxError as exc:
                raise _token_error(exc) from exc
            fed_length += len(chunk)
            while collector.events:
                yield collector.events.popleft()

        if fed_length == 0:
            self.logger.debug("Empty input, no events produced")
            return

        try:
            parser.close()
        except etree.XMLSyntaxError as exc:
            raise _token_error(exc) from exc
        while collector.events:
            yield collector.events.popleft()

        self.logger.debug("Token stream exhausted", extra={"input_length": fed_length})


def split_chunks(content: Chunk, chunk_size: int) -> Iterator[Chunk]:
    """Split in-memory content into feed-sized slices."""
    for offset in range(0, len(content), chunk_size):
        yield content[offset:offset + chunk_size]


def read_chunks(
    stream: IO[Any], chunk_size: int, name: Optional[str] = None
) -> Iterator[Chunk]:
    """Read a file-like object lazily in feed-sized pieces.

    Raises:
        SourceIOError: If the stream cannot be read
    """
    while True:
        try:
            chunk = stream.read(chunk_size)
        except OSError as exc:
            raise SourceIOError(f"Unable to read input: {exc}", path=name) from exc
        if not chunk:
            return
        yield chunk
