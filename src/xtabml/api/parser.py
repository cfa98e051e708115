"""Core parser API for XtabML cross-tabulation reports.

This module provides the parsing API with progressive disclosure, from the
module-level functions to the reusable :class:`XtabMLParser` class. Every
call returns a complete :class:`Document` or raises exactly one
:class:`XtabMLError`; failures are logged before they propagate.
"""

import time
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterable, Optional, TextIO, Union

from xtabml.shared import (
    ParserConfig,
    SourceIOError,
    XtabMLError,
    get_logger,
)
from xtabml.tokenization import LxmlEventSource, read_chunks, split_chunks
from xtabml.tokenization.source import Chunk
from xtabml.tree import Document, XtabMLBuilder

# Type definitions for input data
InputType = Union[str, bytes, BinaryIO, TextIO, Path]

# Constants for API operations
PREVIEW_LENGTH = 100  # Max length for content preview in logs
MS_PER_SECOND = 1000  # Milliseconds per second conversion


def parse(
    input_data: InputType,
    config: Optional[ParserConfig] = None,
    correlation_id: Optional[str] = None
) -> Document:
    """Parse an XtabML report from any supported input.

    ``str`` and ``bytes`` are treated as markup, :class:`Path` objects as
    files, and anything with a ``read()`` method as a stream.

    Args:
        input_data: Markup, a Path, or a readable file-like object
        config: Parser configuration (defaults to strict)
        correlation_id: Optional correlation ID for request tracking

    Returns:
        The parsed Document

    Raises:
        XtabMLError: If the input cannot be read or parsed
        TypeError: If the input type is not supported

    Examples:
        >>> document = parse('<xtab version="1.1"/>')
        >>> document.version
        '1.1'

        >>> document = parse(Path('report.xte'))
        >>> [table.title for table in document.tables]
        ['q4: Age']
    """
    logger = get_logger(__name__, correlation_id, "parse")
    logger.info(
        "Starting universal parse operation",
        extra={
            "input_type": type(input_data).__name__,
            "has_correlation_id": correlation_id is not None
        }
    )

    if isinstance(input_data, str):
        return parse_string(input_data, config, correlation_id)
    if isinstance(input_data, bytes):
        return parse_bytes(input_data, config, correlation_id)
    if isinstance(input_data, Path):
        return parse_file(input_data, config, correlation_id)
    if hasattr(input_data, "read"):
        return _parse_stream(input_data, config, correlation_id)

    raise TypeError(f"Unsupported input type: {type(input_data).__name__}")


def parse_string(
    xml_string: str,
    config: Optional[ParserConfig] = None,
    correlation_id: Optional[str] = None
) -> Document:
    """Parse an XtabML report held in a string.

    Examples:
        >>> document = parse_string('<xtab><user>Test &amp; User</user></xtab>')
        >>> document.user
        'Test & User'
    """
    logger = get_logger(__name__, correlation_id, "parse_string")
    logger.info(
        "Starting string parse operation",
        extra={
            "content_length": len(xml_string),
            "preview": (
                xml_string[:PREVIEW_LENGTH] + "..."
                if len(xml_string) > PREVIEW_LENGTH else xml_string
            )
        }
    )
    return _parse_content(xml_string, config, correlation_id, logger)


def parse_bytes(
    data: bytes,
    config: Optional[ParserConfig] = None,
    correlation_id: Optional[str] = None
) -> Document:
    """Parse an XtabML report held in bytes.

    The character encoding is taken from the XML declaration (UTF-8 when
    there is none).
    """
    logger = get_logger(__name__, correlation_id, "parse_bytes")
    logger.info("Starting bytes parse operation", extra={"content_length": len(data)})
    return _parse_content(data, config, correlation_id, logger)


def parse_file(
    file_path: Union[str, Path],
    config: Optional[ParserConfig] = None,
    correlation_id: Optional[str] = None
) -> Document:
    """Parse an XtabML report from a file, reading it in chunks.

    Args:
        file_path: Path to the report (string or Path object)
        config: Parser configuration (defaults to strict)
        correlation_id: Optional correlation ID for request tracking

    Returns:
        The parsed Document

    Raises:
        SourceIOError: If the file cannot be opened or read
        XtabMLError: If the content cannot be parsed
    """
    logger = get_logger(__name__, correlation_id, "parse_file")
    path_obj = Path(file_path) if isinstance(file_path, str) else file_path
    config = config or ParserConfig()

    logger.info("Starting file parse operation", extra={"file_path": str(path_obj)})

    try:
        handle = path_obj.open("rb")
    except OSError as exc:
        logger.error(
            "Unable to open input file",
            extra={"file_path": str(path_obj), "error": str(exc)}
        )
        raise SourceIOError(
            f"Unable to open {path_obj}: {exc.strerror or exc}", path=str(path_obj)
        ) from exc

    with handle:
        chunks = read_chunks(handle, config.source.chunk_size, name=str(path_obj))
        return _run(chunks, config, correlation_id, logger)


def _parse_content(
    content: Chunk,
    config: Optional[ParserConfig],
    correlation_id: Optional[str],
    logger: Any
) -> Document:
    config = config or ParserConfig()
    chunks = split_chunks(content, config.source.chunk_size)
    return _run(chunks, config, correlation_id, logger)


def _parse_stream(
    file_obj: Union[BinaryIO, TextIO],
    config: Optional[ParserConfig],
    correlation_id: Optional[str]
) -> Document:
    logger = get_logger(__name__, correlation_id, "parse_stream")
    config = config or ParserConfig()
    name = getattr(file_obj, "name", None)
    logger.info("Starting stream parse operation", extra={"stream_name": name})

    chunks = read_chunks(file_obj, config.source.chunk_size, name=name)
    return _run(chunks, config, correlation_id, logger)


def _run(
    chunks: Iterable[Chunk],
    config: ParserConfig,
    correlation_id: Optional[str],
    logger: Any
) -> Document:
    """Drive the token source and builder over ``chunks``.

    Args:
        chunks: Markup fragments in order
        config: Effective parser configuration
        correlation_id: Optional correlation ID for request tracking
        logger: Logger of the calling entry point

    Returns:
        The parsed Document
    """
    start_time = time.time()
    source = LxmlEventSource(config.source, correlation_id)
    builder = XtabMLBuilder(config, correlation_id)

    try:
        document = builder.build(source.events(chunks))
    except XtabMLError as e:
        logger.error(
            "Parse operation failed",
            extra={
                "error_type": type(e).__name__,
                "error": str(e),
                "processing_time_ms": (time.time() - start_time) * MS_PER_SECOND
            }
        )
        raise

    logger.info(
        "Parse operation completed",
        extra={
            "table_count": len(document.tables),
            "processing_time_ms": (time.time() - start_time) * MS_PER_SECOND
        }
    )
    return document


class XtabMLParser:
    """Reusable XtabML parser with fixed configuration and usage statistics.

    A parser instance runs one parse at a time; use separate instances for
    parses on different threads.

    Attributes:
        config: Current parser configuration
        correlation_id: Correlation ID for request tracking

    Examples:
        Basic usage with default configuration:
        >>> parser = XtabMLParser()
        >>> document = parser.parse(Path('report.xte'))
        >>> document.tables[0].statistic_types()
        ['Percent']

        Lenient cell placement:
        >>> parser = XtabMLParser(config=ParserConfig.lenient())
        >>> documents = [parser.parse(path) for path in report_paths]
        >>> parser.statistics["total_parses"] == len(report_paths)
        True
    """

    def __init__(
        self,
        config: Optional[ParserConfig] = None,
        correlation_id: Optional[str] = None
    ) -> None:
        """Initialize XtabML parser.

        Args:
            config: Parser configuration (defaults to strict)
            correlation_id: Optional correlation ID for request tracking
        """
        self.config = config or ParserConfig()
        self.correlation_id = correlation_id or self.config.correlation_id

        self.logger = get_logger(__name__, self.correlation_id, "xtabml_parser")

        # Components are reused across parses
        self._source = LxmlEventSource(self.config.source, self.correlation_id)
        self._builder = XtabMLBuilder(self.config, self.correlation_id)

        self._parse_count = 0
        self._successful_parses = 0
        self._total_processing_time = 0.0

        self.logger.info(
            "XtabMLParser initialized",
            extra={
                "cell_policy": self.config.cell_policy.name,
                "correlation_id": self.correlation_id
            }
        )

    def parse(self, input_data: InputType) -> Document:
        """Parse an XtabML report with this parser's configuration.

        Args:
            input_data: Markup, a Path, or a readable file-like object

        Returns:
            The parsed Document

        Raises:
            XtabMLError: If the input cannot be read or parsed
            TypeError: If the input type is not supported
        """
        if isinstance(input_data, Path):
            return self.parse_file(input_data)

        if isinstance(input_data, (str, bytes)):
            chunks: Iterable[Chunk] = split_chunks(
                input_data, self.config.source.chunk_size
            )
        elif hasattr(input_data, "read"):
            chunks = read_chunks(
                input_data,
                self.config.source.chunk_size,
                name=getattr(input_data, "name", None),
            )
        else:
            raise TypeError(f"Unsupported input type: {type(input_data).__name__}")

        self.logger.info(
            "Starting configured parse operation",
            extra={
                "input_type": type(input_data).__name__,
                "parse_count": self._parse_count + 1
            }
        )
        return self._parse_chunks(chunks)

    def parse_file(self, file_path: Union[str, Path]) -> Document:
        """Parse an XtabML report from a file.

        Raises:
            SourceIOError: If the file cannot be opened or read
            XtabMLError: If the content cannot be parsed
        """
        path_obj = Path(file_path)
        self.logger.info(
            "Starting configured file parse",
            extra={"file_path": str(path_obj), "parse_count": self._parse_count + 1}
        )

        try:
            handle = path_obj.open("rb")
        except OSError as exc:
            self._record(0.0, success=False)
            self.logger.error(
                "Unable to open input file",
                extra={"file_path": str(path_obj), "error": str(exc)}
            )
            raise SourceIOError(
                f"Unable to open {path_obj}: {exc.strerror or exc}",
                path=str(path_obj),
            ) from exc

        with handle:
            return self._parse_chunks(
                read_chunks(handle, self.config.source.chunk_size, name=str(path_obj))
            )

    def _parse_chunks(self, chunks: Iterable[Chunk]) -> Document:
        start_time = time.time()
        try:
            document = self._builder.build(self._source.events(chunks))
        except XtabMLError as e:
            processing_time = (time.time() - start_time) * MS_PER_SECOND
            self._record(processing_time, success=False)
            self.logger.error(
                "Configured parse failed",
                extra={
                    "error_type": type(e).__name__,
                    "error": str(e),
                    "processing_time_ms": processing_time
                }
            )
            raise

        processing_time = (time.time() - start_time) * MS_PER_SECOND
        self._record(processing_time, success=True)
        self.logger.info(
            "Configured parse completed",
            extra={
                "table_count": len(document.tables),
                "processing_time_ms": processing_time,
                "total_parses": self._parse_count,
                "success_rate": self._successful_parses / self._parse_count
            }
        )
        return document

    def _record(self, processing_time: float, success: bool) -> None:
        self._parse_count += 1
        self._total_processing_time += processing_time
        if success:
            self._successful_parses += 1

    def reconfigure(self, config: ParserConfig) -> None:
        """Replace the configuration, rebuilding the reused components.

        Args:
            config: New parser configuration
        """
        self.config = config
        self._source = LxmlEventSource(self.config.source, self.correlation_id)
        self._builder = XtabMLBuilder(self.config, self.correlation_id)

        self.logger.info(
            "Parser reconfigured",
            extra={"cell_policy": self.config.cell_policy.name}
        )

    @property
    def statistics(self) -> Dict[str, Any]:
        """Get parser usage statistics.

        Returns:
            Dictionary with parse counts, success rate and timings
        """
        return {
            "total_parses": self._parse_count,
            "successful_parses": self._successful_parses,
            "failed_parses": self._parse_count - self._successful_parses,
            "success_rate": (
                self._successful_parses / self._parse_count
                if self._parse_count > 0 else 0.0
            ),
            "total_processing_time_ms": self._total_processing_time,
            "average_processing_time_ms": (
                self._total_processing_time / self._parse_count
                if self._parse_count > 0 else 0.0
            ),
            "correlation_id": self.correlation_id,
        }

    def reset_statistics(self) -> None:
        """Reset parser usage statistics."""
        self._parse_count = 0
        self._successful_parses = 0
        self._total_processing_time = 0.0

        self.logger.info("Parser statistics reset")
