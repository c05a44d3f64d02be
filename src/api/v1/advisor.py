"""DB advisor endpoint: collect database context, ask the model, return advice."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Annotated, Any

from fastapi import APIRouter, Depends

from core.config import Settings, get_settings
from schemas.advisor import (
    QUERIES_KEY,
    DbAdvisorRequest,
    StructuredAdvice,
)
from schemas.api import ApiResponse
from services.advisor import DbAdvisor


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])

AdvisorFactory = Callable[[str | None], DbAdvisor]


def get_advisor_factory(
    settings: Annotated[Settings, Depends(get_settings)],
) -> AdvisorFactory:
    """Return a builder turning an optional per-request API key into an advisor.

    The key is only known once the body is parsed, so the dependency yields a
    factory rather than the advisor itself. Tests override this dependency.
    """

    def _build(api_key: str | None) -> DbAdvisor:
        return DbAdvisor.with_api_key(api_key, settings)

    return _build


@router.post("/db-advisor", response_model=ApiResponse[dict[str, Any]])
async def db_advisor(
    payload: DbAdvisorRequest,
    advisor_factory: Annotated[AdvisorFactory, Depends(get_advisor_factory)],
) -> ApiResponse[dict[str, Any]]:
    """Analyze a database (and optionally a query) and return structured advice.

    Suggested SQL in the answer is returned to the caller for review and is
    never executed.
    """
    advisor = advisor_factory(payload.mistral_api_key)
    context = await advisor.collect_context(
        payload.dsn, sql_query=payload.sql_query, tables=payload.tables
    )
    document = await advisor.generate_advice(context)
    advice = document.to_flat_dict()

    if isinstance(document, StructuredAdvice):
        logger.info("DB advice generated with confidence %.2f", document.confidence)
    else:
        logger.info("DB advice generated in unstructured form")

    if isinstance(advice, dict) and advice.get(QUERIES_KEY):
        logger.warning(
            "Advice contains suggested SQL (%s); it must be reviewed and is never "
            "executed automatically",
            QUERIES_KEY,
        )

    return ApiResponse(
        success=True,
        data={"advice": advice},
        message=(
            "Advice generated successfully"
            if document.has_data()
            else "Advice generated without usable content"
        ),
    )


__all__ = ["db_advisor", "get_advisor_factory", "router"]
