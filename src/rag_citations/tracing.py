"""OpenTelemetry tracing helpers for chunking and citation rendering.

Key concepts:
- Span          : a single named, timed unit of work (one document chunked, one answer rendered)
- TracerProvider: the entry point that configures how spans are created and exported
- Tracer        : created from the provider; used to start new spans
- Exporter      : receives completed spans and forwards them to an observability backend

Usage with an OTLP backend:

    from rag_citations.tracing import configure_tracing, get_tracer, traced_chunking
    from rag_citations.chunking import chunk_document

    configure_tracing(endpoint="http://localhost:6006/v1/traces", service_name="ingest")
    chunker = traced_chunking(chunk_document, get_tracer("ingest.chunking"))
    chunks = chunker(text, file_type="md")

Usage without a backend (development / testing):

    configure_tracing()   # uses ConsoleSpanExporter by default
"""
from __future__ import annotations

import inspect
from typing import Callable, Sequence

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)

from .schema import EnhancedSource, InlineCitationResult, TextChunk

# ---------------------------------------------------------------------------
# Span attribute names
# ---------------------------------------------------------------------------

ATTR_INPUT_CHARS = "input.chars"
ATTR_FILE_TYPE = "document.file_type"
ATTR_CHUNK_COUNT = "chunking.chunk_count"
ATTR_CHUNK_TOKENS = "chunking.total_tokens"
ATTR_SOURCE_COUNT = "citations.source_count"
ATTR_CITATION_COUNT = "citations.count"
ATTR_IGNORED_COUNT = "citations.ignored_count"
ATTR_SEGMENT_COUNT = "citations.segment_count"

# ---------------------------------------------------------------------------
# Provider lifecycle helpers
# ---------------------------------------------------------------------------

_provider: TracerProvider | None = None


def configure_tracing(
    endpoint: str | None = None,
    service_name: str = "rag-citations",
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """Create and register a global TracerProvider.

    Args:
        endpoint: OTLP HTTP endpoint URL to send traces to. When *None* and
            no custom *exporter* is given, spans are printed to stdout via
            :class:`~opentelemetry.sdk.trace.export.ConsoleSpanExporter`.
        service_name: Label identifying this process in the backend.
        exporter: An already-constructed span exporter, e.g. an
            ``InMemorySpanExporter`` in tests. When provided, *endpoint* is
            ignored.

    Returns:
        The configured :class:`~opentelemetry.sdk.trace.TracerProvider`, also
        set as the global OTel provider.
    """
    global _provider

    resource = Resource(attributes={SERVICE_NAME: service_name})
    provider = TracerProvider(resource=resource)

    if exporter is not None:
        chosen_exporter: SpanExporter = exporter
    elif endpoint is not None:
        # The OTLP exporter is an optional install.
        try:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
                OTLPSpanExporter,
            )
        except ImportError as exc:  # pragma: no cover
            raise ImportError(
                "opentelemetry-exporter-otlp-proto-http is required to export "
                "traces to an OTLP endpoint.  Install it with:\n"
                "  pip install 'rag-citations[otlp]'"
            ) from exc
        chosen_exporter = OTLPSpanExporter(endpoint=endpoint)
    else:
        chosen_exporter = ConsoleSpanExporter()

    # Spans are exported synchronously so tests can read them immediately.
    provider.add_span_processor(SimpleSpanProcessor(chosen_exporter))
    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def get_tracer(name: str) -> trace.Tracer:
    """Return a tracer from the provider set by :func:`configure_tracing`.

    Falls back to the global (no-op unless configured) provider.
    """
    if _provider is not None:
        return _provider.get_tracer(name)
    return trace.get_tracer(name)


# ---------------------------------------------------------------------------
# Span-wrapping helpers
# ---------------------------------------------------------------------------


def _record_chunks(span: trace.Span, chunks: list[TextChunk]) -> None:
    span.set_attribute(ATTR_CHUNK_COUNT, len(chunks))
    span.set_attribute(ATTR_CHUNK_TOKENS, sum(chunk.token_count for chunk in chunks))
    span.set_status(trace.StatusCode.OK)


def _record_error(span: trace.Span, exc: Exception) -> None:
    span.set_status(trace.StatusCode.ERROR, str(exc))
    span.record_exception(exc)


def traced_chunking(chunker: Callable[..., list[TextChunk]], tracer: trace.Tracer):
    """Wrap a chunking callable so every call is recorded as a ``"chunking"`` span.

    Works for both `chunk_document` and the async `achunk_document`; the
    wrapper matches the wrapped callable. The span records:

    - ``input.chars``: length of the document text
    - ``document.file_type``: the declared format, when passed by keyword
    - ``chunking.chunk_count`` / ``chunking.total_tokens``
    - span status: OK on success, ERROR on exception

    Args:
        chunker: Callable with signature ``(text: str, **kwargs) -> list[TextChunk]``.
        tracer: OTel tracer to use for span creation.
    """

    def _start(span: trace.Span, text: str, kwargs: dict) -> None:
        span.set_attribute(ATTR_INPUT_CHARS, len(text))
        file_type = kwargs.get("file_type")
        if file_type is not None:
            span.set_attribute(ATTR_FILE_TYPE, getattr(file_type, "value", str(file_type)))

    if inspect.iscoroutinefunction(chunker):

        async def _awrapped(text: str, **kwargs) -> list[TextChunk]:
            with tracer.start_as_current_span("chunking") as span:
                _start(span, text, kwargs)
                try:
                    chunks = await chunker(text, **kwargs)
                except Exception as exc:
                    _record_error(span, exc)
                    raise
                _record_chunks(span, chunks)
                return chunks

        return _awrapped

    def _wrapped(text: str, **kwargs) -> list[TextChunk]:
        with tracer.start_as_current_span("chunking") as span:
            _start(span, text, kwargs)
            try:
                chunks = chunker(text, **kwargs)
            except Exception as exc:
                _record_error(span, exc)
                raise
            _record_chunks(span, chunks)
            return chunks

    return _wrapped


def traced_citation_rendering(
    renderer: Callable[..., InlineCitationResult],
    tracer: trace.Tracer,
) -> Callable[..., InlineCitationResult]:
    """Wrap a citation renderer so every call is recorded as a ``"citation-rendering"`` span.

    The span records the answer length, the number of sources offered, and
    the citation, ignored-marker and segment counts of the result.

    Args:
        renderer: Callable with signature
            ``(answer: str, sources: Sequence[EnhancedSource], **kwargs) -> InlineCitationResult``,
            such as `build_inline_citations`.
        tracer: OTel tracer to use for span creation.
    """

    def _wrapped(answer: str, sources: Sequence[EnhancedSource], **kwargs) -> InlineCitationResult:
        with tracer.start_as_current_span("citation-rendering") as span:
            span.set_attribute(ATTR_INPUT_CHARS, len(answer))
            span.set_attribute(ATTR_SOURCE_COUNT, len(sources))
            try:
                result = renderer(answer, sources, **kwargs)
            except Exception as exc:
                _record_error(span, exc)
                raise
            span.set_attribute(ATTR_CITATION_COUNT, result.citation_count)
            span.set_attribute(ATTR_IGNORED_COUNT, result.ignored_citation_count)
            span.set_attribute(ATTR_SEGMENT_COUNT, result.segment_count)
            span.set_status(trace.StatusCode.OK)
            return result

    return _wrapped
