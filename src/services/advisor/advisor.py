"""DB advisor service: database context in, advisory document out."""

from __future__ import annotations

import logging

from core.config import Settings, get_settings
from schemas.advisor import AdvisoryDocument, DbContext, StructuredAdvice
from services.advisor.client import MistralClient
from services.advisor.context import collect_context
from services.advisor.interfaces import CompletionClientProtocol
from services.advisor.prompts import build_prompt
from services.advisor.recovery import DEFAULT_PREVIEW_CHARS, recover_document


logger = logging.getLogger(__name__)


class DbAdvisor:
    """Generates structured advice about a database through a completion service.

    The advisor is stateless between calls: each `generate_advice` builds its
    own prompt and document, so one instance may serve concurrent requests.
    """

    def __init__(
        self,
        client: CompletionClientProtocol,
        *,
        max_tables: int = 20,
        preview_chars: int = DEFAULT_PREVIEW_CHARS,
    ) -> None:
        self.client = client
        self.max_tables = max_tables
        self.preview_chars = preview_chars

    @classmethod
    def with_api_key(
        cls, api_key: str | None = None, settings: Settings | None = None
    ) -> DbAdvisor:
        """Build an advisor backed by `MistralClient`.

        Raises:
            AdvisorConfigurationError: If no API key is available.
        """
        settings = settings or get_settings()
        client = MistralClient.from_settings(settings, api_key=api_key)
        return cls(
            client,
            max_tables=settings.MAX_TABLES_TO_ANALYZE,
            preview_chars=settings.FALLBACK_PREVIEW_CHARS,
        )

    async def collect_context(
        self,
        database_url: str,
        sql_query: str | None = None,
        tables: list[str] | None = None,
    ) -> DbContext:
        return await collect_context(
            database_url,
            sql_query=sql_query,
            provided_tables=tables,
            max_tables=self.max_tables,
        )

    async def generate_advice(self, context: DbContext) -> AdvisoryDocument:
        """Ask the completion service for advice and recover its document.

        Raises:
            UpstreamError, AdvisorTimeoutError, EmptyStreamResult: From the
                completion client. Malformed answers never raise.
        """
        logger.info(
            "Generating DB advice for %d table(s)", len(context.tables)
        )
        prompt = build_prompt(context)
        response_text = await self.client.generate_stream(prompt)
        document = recover_document(response_text, preview_chars=self.preview_chars)

        if not document.has_data():
            kind = "Structured" if isinstance(document, StructuredAdvice) else "Raw"
            logger.warning("%s advisory document carries no data", kind)
        return document
